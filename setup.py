import setuptools

VERSION = "0.1.0"

setuptools.setup(
    name="macpatch",
    keywords="68k Macintosh ROM patch trap table tool library",
    description="Tools to relocate 68k Macintosh ROM images and decode their trap table",
    license="GPL",
    classifiers=[
        "Operating System :: OS Independent",
        "Topic :: Software Development",
        "Programming Language :: Python :: 3",
    ],
    python_requires=">=3.9",
    version=VERSION,
    packages=setuptools.find_packages(exclude=["tests"]),
    py_modules=["extract_traps", "rom_patch"],
    install_requires=["tqdm"],
    extras_require={
        "test": ["pytest"],
    },
)
