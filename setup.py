from setuptools import setup, find_packages

setup(
    name="tiledispatch",
    version="0.1.0",
    description="Apply a function to every tile of a tiled dataset using several cores.",
    packages=find_packages(include=["tiledispatch", "tiledispatch.*"]),
    include_package_data=True,
    zip_safe=False,
    python_requires=">=3.10",
    install_requires=[
        "dask[distributed]>=2024.1",
        "numpy",
        "pandas",
        "xarray",
        "pydantic>=2",
        "PyYAML",
        "psutil",
        "tqdm",
        "click",
        "python-dotenv",
    ],
    extras_require={
        "las": ["laspy"],
        "test": ["pytest", "laspy"],
    },
    entry_points={
        "console_scripts": [
            "tiledispatch=tiledispatch.cli.cli:cli",
        ],
    },
)
