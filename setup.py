from setuptools import setup, find_packages

"""
This module is part of *signal2nwb*: conversion of CED Signal patch clamp
recordings (MATLAB wave data exports) to NWB.

Support::

    Inhibitory plasticity experiments in hippocampal CA1.
"""

version = '0.2.0'

setup(name='signal_nwb_tools',
      version=version,
      description='Convert CED Signal patch clamp recordings to NWB',
      license='MIT',
      package_dir={'': 'src'},
      packages=find_packages(where='src', include=['signal2nwb*']),
      python_requires='>=3.10',
      install_requires=[
          'numpy',
          'scipy',
          'pynwb>=2.3',
          'nwbinspector',
          'python-dateutil',
          'toml',
          'matplotlib',
          'pandas',
          ],
      extras_require={
          'test': ['pytest'],
          },
      zip_safe=False,
      entry_points={
          'console_scripts': [
               'signal2nwb=signal2nwb.signal_to_NWB:main',
               'dispnwb=signal2nwb.display_nwb:main',
               ],
      },
      classifiers = [
             "Programming Language :: Python :: 3.10+",
             "Development Status ::  Beta",
             "Environment :: Console",
             "Intended Audience :: Neuroscientists",
             "License :: MIT",
             "Operating System :: OS Independent",
             "Topic :: Software Development :: Tools :: Python Modules",
             "Topic :: Data Processing :: Neuroscience",
             ],
    )
