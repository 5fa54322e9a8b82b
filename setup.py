from setuptools import setup

setup(
    name='pycsi',
    version='0.1.0',
    description='Coordinate-Sorted Index (CSI) reader and writer for block-compressed genomic files',
    install_requires=['pandas', 'numpy'],
    extras_require={
        'test': ['pytest'],
        'docs': ['sphinx', 'myst-parser', 'furo'],
    },
    packages=['pycsi'],
    python_requires='>=3.10',
    zip_safe=False
)
