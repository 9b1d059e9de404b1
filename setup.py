"""Install the identity manager package."""

from setuptools import setup, find_packages

setup(
    name='identity-manager',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    python_requires='>=3.8',
    install_requires=[
        "sqlalchemy>=1.4",
        "pyjwt>=2.0",
        "redis>=4.1",
        "python-dateutil",
        "pytz",
        "retry",
        "flask",
        "werkzeug",
        "markupsafe",
        "wtforms>=3.0",
        "email-validator",
        "python-json-logger",
    ],
    extras_require={
        'test': [
            "pytest",
            "hypothesis",
            "mimesis>=5",
        ]
    },
    zip_safe=False
)
