from setuptools import setup, find_packages

setup(
    name="cellarplan",
    version="0.1.0",
    description="Cellarplan - What to open tonight, and in what order. Cellar lineup and evening planning engine.",
    author="",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0",
        "pandas>=2.0.0",
        "pydantic>=2.5.0",
        "python-dotenv>=1.0.0",
        "tenacity>=8.2.0",
        "psycopg[binary]>=3.1.0",
        "psycopg-pool>=3.2.0",
        "supabase>=2.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
)
