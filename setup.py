"""Setup script for Burst Face Analyzer package."""

from setuptools import setup, find_packages
from pathlib import Path

# Read README if it exists
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="burstface-analyzer",
    version="0.1.0",
    description="Face quality ranking and identity resolution across photo bursts",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Burst Face Analyzer Team",
    packages=find_packages(exclude=["tests*", "docs*"]),
    python_requires=">=3.9",
    install_requires=[
        "opencv-python>=4.9.0",
        "numpy>=1.26.0",
        "pandas>=2.2.0",
        "tqdm>=4.66.0",
        "pillow>=10.3.0",
        "pyyaml>=6.0.0",
    ],
    extras_require={
        "models": [
            "insightface>=0.7.3",
            "onnxruntime>=1.16.3",
        ],
        "dev": [
            "pytest>=7.4.0",
            "black",
            "flake8",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "burstface-analyze=scripts.analyze_burst:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
