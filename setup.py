# setup.py
from setuptools import setup, find_packages
from pathlib import Path
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="batesstamp",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["batesstamp", "batesstamp.*"]),
    description="Stamp labels and Bates numbers on multi-page images with a pool of forked workers.",
    long_description=long_description,
    long_description_content_type='text/markdown',
    python_requires=">=3.9",

    install_requires=[
        "Pillow>=10.1",
        "msgpack>=1.0",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'batesstamp=batesstamp.cli:main',
        ],
    },
)
