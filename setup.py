from setuptools import setup, find_namespace_packages

setup(
    name="foldkin",
    version="0.1.0",
    description="Stochastic simulation of RNA secondary-structure folding kinetics",
    packages=find_namespace_packages(where="src", include=["foldkin", "foldkin.*"]),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "pandas",
        "pyyaml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
)
