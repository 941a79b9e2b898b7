from setuptools import setup

setup(
    name="file_dit",
    version="1.0.0",
    description="File data integrity tool for drives and filesystems",
    packages=["file_dit"],
    install_requires=[
        "click",
        "loguru",
        "numpy",
        "psutil",
        "xxhash",
    ],
    extras_require={"test": ["pytest>=6.0"]},
    python_requires=">=3.8",
    entry_points={"console_scripts": ["file-dit=file_dit.cli:main"]},
)
