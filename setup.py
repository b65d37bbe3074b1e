#!/usr/bin/env python
# -*- coding: utf-8 -*
import os
from setuptools import setup

ROOT_DIR = os.path.dirname(__file__)
SOURCE_DIR = os.path.join(ROOT_DIR)

test_requirements = []
requirements = ['splitstream>=1.2.0']

setup(
    name="handlerrpc",
    author="Rickard Lyrenius",
    author_email="rickard@evolviq.com",
    version='1.1.0',
    description="Namespaced handler objects served over XML-RPC / JSON-RPC (HTTP, TCP, pipes).",
    packages=['handlerrpc'],
    python_requires='>=3.7',
    install_requires=requirements,
    extras_require={'test': ['pytest'] + test_requirements},
    entry_points={
        'console_scripts': ['handlerrpc-example = handlerrpc.examples:main'],
    },
    zip_safe=True,
    classifiers=[
        "License :: OSI Approved :: Apache Software License",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy"],
    test_suite='tests'
)
