# -*- coding: utf-8 -
#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import os

from setuptools import setup, find_packages

from fcgiwrap import __version__


CLASSIFIERS = [
    'Development Status :: 4 - Beta',
    'Environment :: No Input/Output (Daemon)',
    'Intended Audience :: System Administrators',
    'License :: OSI Approved :: MIT License',
    'Operating System :: POSIX',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Programming Language :: Python :: 3 :: Only',
    'Programming Language :: Python :: Implementation :: CPython',
    'Topic :: Internet',
    'Topic :: Utilities',
    'Topic :: Internet :: WWW/HTTP',
    'Topic :: Internet :: WWW/HTTP :: Dynamic Content :: CGI Tools/Libraries']

# read long description
with open(os.path.join(os.path.dirname(__file__), 'README.rst')) as f:
    long_description = f.read()

# read dev requirements
fname = os.path.join(os.path.dirname(__file__), 'requirements_test.txt')
with open(fname) as f:
    tests_require = [l.strip() for l in f.readlines() if l.strip()]


extras_require = {
    'test': tests_require,
}

setup(
    name='fcgiwrap',
    version=__version__,

    description='FastCGI to CGI bridge for UNIX',
    long_description=long_description,
    long_description_content_type='text/x-rst',
    license='MIT',

    python_requires='>=3.7',
    install_requires=[],
    classifiers=CLASSIFIERS,
    zip_safe=False,
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,

    entry_points="""
    [console_scripts]
    fcgiwrap=fcgiwrap.app:run
    """,
    extras_require=extras_require,
)
