from pathlib import Path

from setuptools import find_packages, setup

# Read the contents of README.md
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Read requirements
with open(this_directory / "requirements.txt") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="polifilter",
    version="0.1.0",
    description="Reactive filter, dropdown and consistency services for Nigerian political reference data",
    long_description=long_description,
    long_description_content_type="text/markdown",
    # Package discovery
    packages=find_packages(include=["polifilter", "polifilter.*"]),
    package_data={
        "polifilter": ["relationships.yaml"],
    },
    include_package_data=True,
    zip_safe=False,
    # Dependencies
    install_requires=requirements,
    python_requires=">=3.9",
    # Development dependencies
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "hypothesis>=6.0.0",
        ],
        "dev": [
            "black>=22.0.0",
            "flake8>=4.0.0",
            "isort>=5.10.0",
            "mypy>=0.910",
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
            "hypothesis>=6.0.0",
            "types-PyYAML",
            "types-requests",
        ],
    },
    # Metadata
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    # Entry points
    entry_points={
        "console_scripts": [
            "polifilter=polifilter.cli:main",
        ],
    },
    # Other
    keywords=["filters", "dropdowns", "data-quality", "referential-integrity", "nigeria"],
)
