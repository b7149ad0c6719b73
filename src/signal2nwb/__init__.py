"""
init for signal2nwb: CED Signal patch clamp recordings to NWB
"""
# Use Semantic Versioning, http://semver.org/
version_info = (0, 2, 0, '')
__version__ = "%d.%d.%d%s" % version_info

from . import errors
from . import config
from . import signal_reader
from . import runs
from . import series
from . import hierarchy
