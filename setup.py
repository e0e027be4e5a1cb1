from setuptools import setup, find_packages

setup(
    name="saucerun",
    version="1.0.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "click>=8.0.0",
        "requests>=2.25.0",
        "retrying>=1.3.3",
        "pydantic>=2.0",
        "python-dotenv>=0.19.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "saucerun=saucerun.cli:cli",
        ],
    },
    description="Run browser test pages on Sauce Labs and report one pass/fail verdict",
    python_requires=">=3.9",
)
