"""
Setup configuration for robo-mobile-test-kit pytest plugin
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the contents of README file
this_directory = Path(__file__).parent
long_description = ""
readme_file = this_directory / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding='utf-8')

setup(
    name="robo-mobile-test-kit",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Pytest plugin for Appium mobile suites: per-worker cucumber JSON fragments, consolidated and deduplicated into one JSON and HTML report",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/robo-mobile-test-kit",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    package_data={
        'robo_mobile_test_kit': [
            'templates/**/*',
            'templates/*/*',
        ],
    },
    classifiers=[
        "Framework :: Pytest",
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "pytest>=7.0.0",
        "jinja2>=3.0.0",
        "pandas>=2.0.0",
        "openpyxl>=3.1.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "bdd": ["pytest-bdd>=7.0.0,<9"],
        "parallel": ["pytest-xdist>=3.0.0"],
        "test": ["pytest>=7.0.0", "pytest-bdd>=7.0.0,<9", "pytest-xdist>=3.0.0"],
    },
    entry_points={
        "pytest11": [
            "robo-mobile-test-kit = robo_mobile_test_kit.plugin",
        ]
    },
    keywords="pytest reporting html cucumber appium mobile test-automation robo",
)
