"""Setup configuration for wireform package."""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

test_requires = [
    "pytest>=7.0.0",
    "pytest-asyncio>=0.23.0",
    "pyyaml>=6.0",
]

setup(
    name="wireform",
    version="1.0.0",
    description="Backend-agnostic HTTP client with composable response descriptions, streaming and websockets",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        # Development Status
        "Development Status :: 4 - Beta",
        # Intended Audience
        "Intended Audience :: Developers",
        # Framework
        "Framework :: AsyncIO",
        # Topic
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Software Development :: Libraries :: Python Modules",
        # Operating System
        "Operating System :: OS Independent",
        # Programming Language
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: 3 :: Only",
    ],
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.31.0",
        "urllib3>=1.26.0",
        "aiohttp>=3.11.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "yaml": ["pyyaml>=6.0"],
        "test": test_requires,
        "dev": test_requires
        + [
            "black>=23.0.0",
            "mypy>=1.0.0",
            "ruff>=0.1.0",
        ],
    },
)
