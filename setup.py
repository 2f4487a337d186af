from setuptools import setup, find_packages


install_requires = [
    'PyYAML>=3.0',
    'jsonschema>=4',
    'Pillow>=8,!=8.3.0,!=8.3.1;python_version=="3.9"',
    'Pillow>=9;python_version=="3.10"',
    'Pillow>=10;python_version=="3.11"',
    'Pillow>=10.1;python_version=="3.12"',
    'Pillow>=11;python_version>="3.13"',
    'lxml>=6',
    'requests'
]

tests_require = [
    'pytest',
]


setup(
    name='WMSView',
    version="0.1.0",
    description='Client for OGC Web Map Services: capabilities parsing, layer trees'
        ' and background map downloads',
    author='The WMSView developers',
    license='Apache Software License 2.0',
    packages=find_packages(include=['wmsview', 'wmsview.*']),
    include_package_data=True,
    entry_points={
        'console_scripts': [
            'wmsview-util = wmsview.script.util:main',
        ],
    },
    package_data={'': ['*.json']},
    install_requires=install_requires,
    extras_require={
        'test': tests_require,
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Scientific/Engineering :: GIS",
    ],
    zip_safe=False
)
