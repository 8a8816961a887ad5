from setuptools import find_packages, setup

setup(
    name='gpiolink',
    version='1.0.0',
    description='Asyncio socket client for the pigpio GPIO daemon',
    author='',
    author_email='',
    packages=find_packages(include=['gpiolink', 'gpiolink.*']),
    python_requires='>=3.10',
    install_requires=[
        'msgspec',
        'construct',
        'tenacity',
        'transitions',
        'prometheus-client',
        'marshmallow',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
