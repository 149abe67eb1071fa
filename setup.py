"""
Shellfish Package Setup
"""

from setuptools import setup, find_packages

setup(
    name="shellfish",
    version="1.0.0",
    description="Halo density profiles and merger-tree histories for splashback-shell measurements",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20",
        "scipy>=1.7",
        "h5py>=3.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "mpi": ["mpi4py>=3.0"],
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "black>=23.0",
            "flake8>=6.0",
            "mypy>=1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "shellfish=shellfish.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Astronomy",
    ],
    keywords="cosmology, simulations, halos, density profiles, merger trees, splashback",
)
