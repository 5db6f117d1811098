from os import path
from setuptools import setup, find_packages
from x16bmx.version import __version__

# Get the long description from the README file
here = path.abspath( path.dirname( __file__ ) )
with open( path.join( here, 'DESCRIPTION.rst' ), encoding='utf-8' ) as f:
    long_description = f.read()

setup(
    name='x16bmx',
    version=__version__,
    description=('Reader and writer for BMX, the indexed bitmap '
                'format of the Commander X16'),
    long_description=long_description,
    license='BSD',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: BSD License',
        'Programming Language :: Python :: 3 :: Only',
        'Programming Language :: Python :: 3',
        'Topic :: Multimedia :: Graphics :: Graphics Conversion',
    ],
    python_requires='>=3.7',
    install_requires=['typing_extensions'],
    extras_require={
        'images': ['Pillow >= 2.8.1'],
        'test': ['Pillow >= 2.8.1'],
    },
    packages=find_packages( exclude=['doc'] ),
    entry_points={
        'console_scripts': [
            'bmxinfo = x16bmx.cli:bmxinfo',
            'bmxexport = x16bmx.cli:bmxexport',
            'bmximport = x16bmx.cli:bmximport',
        ],
    },
)
