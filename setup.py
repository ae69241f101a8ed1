from setuptools import setup

setup(
    name='healorder',
    version='0.1.0',
    description='HEALPix RING/NESTED pixel index conversion for JAX.',
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    keywords='jax healpix ring nested',
    license='MIT',
    author='ghcollin',
    author_email='',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3.11',
        'Topic :: Scientific/Engineering :: Astronomy'
    ],
    packages=['healorder'],
    install_requires=['numpy', 'jax'],
    extras_require={
        'test': ['healpy', 'astropy-healpix']
    }
)
