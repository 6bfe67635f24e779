"""Setup configuration for gcs-trace-bench package."""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = (
    readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""
)

setup(
    name="gcs-trace-bench",
    version="1.0.0",
    description="Cloud Storage client demos: storage layout lookup and a traced upload/download latency benchmark",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["trace_transfer", "storage_layout"],
    python_requires=">=3.9",
    install_requires=[
        "google-auth>=2.23.0",
        "google-cloud-storage>=3.0.0",
        "google-cloud-storage-control>=1.3.0",
        "opentelemetry-api>=1.24.0",
        "opentelemetry-sdk>=1.24.0",
        "opentelemetry-exporter-gcp-trace>=1.6.0",
        "opentelemetry-resourcedetector-gcp>=1.6.0a0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=22.0.0",
            "flake8>=5.0.0",
            "mypy>=0.990",
        ],
    },
    entry_points={
        "console_scripts": [
            "trace-transfer=trace_transfer:main",
            "storage-layout=storage_layout:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="google-cloud-storage gcs benchmark opentelemetry cloud-trace grpc directpath",
)
