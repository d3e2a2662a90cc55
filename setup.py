from setuptools import setup, find_packages

setup(
    name="domo-lineage",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.31.0",
        "urllib3>=1.26",
        "python-dotenv",
        "click>=8.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["domo-lineage=domo_lineage.cli.lineage:cli"],
    },
)
