#!/usr/bin/env python3
from setuptools import find_packages, setup
import re

__version__ = re.search(
    r'__version__\s*=\s*[\'"]([^\'"]*)[\'"]', open("src/skexpfam/_version.py").read()
).group(1)

if __name__ == "__main__":
    setup(
        name="scikit-expfam",
        version=__version__,
        description=(
            "Nystrom estimators of kernel exponential family densities, "
            "following the scikit-learn API"
        ),
        package_dir={"": "src"},
        packages=find_packages("src"),
        python_requires=">=3.9",
        install_requires=[
            "numpy",
            "scipy",
            "scikit-learn>=1.1",
            "joblib",
            "tqdm",
        ],
        extras_require={
            "tests": [
                "pytest",
                "parameterized",
            ],
        },
        classifiers=[
            "Intended Audience :: Science/Research",
            "Operating System :: OS Independent",
            "Programming Language :: Python :: 3",
            "Topic :: Scientific/Engineering",
        ],
    )
