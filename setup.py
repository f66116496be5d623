from setuptools import setup, find_packages

setup(
    name='bundlesync',
    version='0.1.0',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    install_requires=[
        'requests',
        'urllib3',
        'PyYAML',
        'packaging',
        'platformdirs',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'bundlesync=bundlesync.cli:main',
        ],
    },
)
