#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import os

from setuptools import setup


version_info = {
    'name': 'tcpcat',
    'version': '1.0.0',
    'description': 'Relay standard input and output over a TCP connection',
    'license': 'MIT',
    'classifiers': [
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX',
        'Operating System :: MacOS :: MacOS X',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking'
    ]
}

topdir, _ = os.path.split(os.path.abspath(__file__))


def get_requirements():
    """Parse a requirements.txt file and return as a list."""
    with open(os.path.join(topdir, 'requirements.txt')) as fin:
        lines = fin.readlines()
    lines = [line.strip() for line in lines]
    return [line for line in lines if line and not line.startswith('#')]


def main():
    os.chdir(topdir)
    setup(
        packages=['tcpcat'],
        package_dir={'': 'lib'},
        python_requires='>=3.8',
        install_requires=get_requirements(),
        extras_require={'test': ['pytest']},
        entry_points={'console_scripts': ['tcpcat = tcpcat.main:main']},
        zip_safe=False,
        **version_info
    )


if __name__ == '__main__':
    main()
