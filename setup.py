from setuptools import setup, find_packages

setup(
    name="fieldsearch",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0.0",
        "psycopg2-binary>=2.9.0",
        "nltk>=3.8",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
