from setuptools import setup

description = 'Bind declarative API descriptions to remote services'

setup(
    name='rpcadapter',
    version='0.1.0',
    description=description,
    long_description=description,
    author='PiE runtime team',
    author_email='runtime@pioneers.berkeley.edu',
    python_requires='>=3.9',
    url='https://github.com/jonathan-j-lee/pie-central-fork',
    packages=['rpcadapter'],
    install_requires=[
        'cbor2>=5,<6',
        'click>=8,<9',
        'httpx>=0.23,<1',
        'orjson>=3,<4',
        'pyzmq>=22',
        'structlog>=21',
        'PyYAML>=5,<7',
    ],
    extras_require={
        'test': [
            'pytest>=7',
            'pytest-mock>=3',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Natural Language :: English',
        'Programming Language :: Python :: 3.9',
    ],
    package_data={
        'rpcadapter': ['py.typed'],
    },
)
