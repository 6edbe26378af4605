#!/usr/bin/env python
""" Schemas, references and MongoDB-style queries over a document storage """

from setuptools import setup, find_packages

setup(
    name='mongodoc',
    version='1.0.0',
    author='Mark Vartanyan',
    author_email='kolypto@gmail.com',

    url='https://github.com/kolypto/py-mongodoc',
    license='BSD',
    description=__doc__,
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    keywords=['mongodb', 'documents', 'sqlalchemy'],

    packages=find_packages(exclude=('tests', 'tests.*')),
    scripts=[],
    entry_points={},

    python_requires='>= 3.7',
    install_requires=[
        'sqlalchemy >= 1.4',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov',
            'nox',
        ],
    },
    include_package_data=True,

    platforms='any',
    classifiers=[
        # https://pypi.python.org/pypi?%3Aaction=list_classifiers
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Database',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
)
