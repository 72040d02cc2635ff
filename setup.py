from setuptools import setup, find_packages

setup(
    name="sshdeck",
    version="0.1",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.8",
    install_requires=[
        "PyQt5",
        "keyring",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-qt",
        ],
    },
    entry_points={
        "console_scripts": [
            "sshdeck=main:main",
        ],
    },
)
