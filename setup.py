from setuptools import setup, find_packages

setup(
    name="stream-coder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "requests",
        "pyyaml",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    author="Uday Kanth",
    description="Streams model output into diffed, atomically-applied file edits.",
)
