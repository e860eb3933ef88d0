"""
setup.py
"""

from setuptools import setup, find_packages

setup(
    name='samlidp',
    version='1.0.0',
    description='Protocol engine of a SAML identity provider.',
    license='Apache 2.0',
    packages=find_packages('src/'),
    package_dir={'': 'src'},
    install_requires=[
        "pysaml2 >= 6.5.1",
        "cryptojwt",
        "SQLAlchemy >= 2.0",
        "PyYAML",
        "gunicorn",
        "Werkzeug",
        "click",
        "cookies-samesite-compat",
    ],
    extras_require={
        "tests": ["pytest"],
    },
    zip_safe=False,
    classifiers=[
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    entry_points={
        "console_scripts": ["samlidp-check-config=samlidp.scripts.check_config:check_config"]
    }
)
