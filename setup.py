"""Install the Herit onboarding and session service."""

from setuptools import setup, find_packages

setup(
    name='herit',
    version='0.3.0',
    packages=find_packages(exclude=['*.tests', '*.tests.*']),
    py_modules=['wsgi'],
    package_data={'herit': ['config.py']},
    install_requires=[
        "bcrypt",
        "fakeredis",
        "flask",
        "flask-sqlalchemy",
        "pydantic>=2",
        "pyjwt",
        "python-json-logger",
        "pytz",
        "redis>=4.2",
        "retry",
        "sqlalchemy",
        "werkzeug",
    ],
    extras_require={
        'test': [
            "hypothesis",
            "pytest",
        ],
    },
    zip_safe=False
)
