from setuptools import setup, find_packages

with open("README.md", "r", encoding='utf-8') as fh:
    long_description = fh.read()

setup(
    name="python-simpleldap",
    version="1.0.0",
    packages=find_packages(exclude=["simpleldap.test"]),
    include_package_data=True,
    package_data={'simpleldap': ["py.typed"]},
    python_requires=">=3.10",
    install_requires=[
        'python-ldap',
        'case-insensitive-dictionary',
        'ldap-filter'
    ],
    extras_require={
        'test': ['pytest'],
    },
    description="A small object-oriented session, entry and result set API over python-ldap.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['ldap'],
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: BSD License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: System :: Systems Administration :: Authentication/Directory :: LDAP',
    ],
)
