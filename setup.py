from pathlib import Path

from setuptools import find_packages, setup

version = (Path(__file__).parent / "txftp/VERSION").read_text("ascii").strip()


install_requires = [
    "Twisted>=21.7.0",
    "zope.interface>=5.1.0",
]
extras_require = {
    ':platform_python_implementation == "CPython"': ["PyDispatcher>=2.0.5"],
    ':platform_python_implementation == "PyPy"': ["PyPyDispatcher>=2.1.0"],
    "test": [
        "pytest",
        "pytest-twisted",
        "testfixtures",
    ],
}


setup(
    name="txftp",
    version=version,
    description="An event-driven FTP client for Twisted",
    long_description=open("README.rst", encoding="utf-8").read(),
    license="BSD",
    packages=find_packages(exclude=("tests", "tests.*")),
    package_data={"txftp": ["VERSION"]},
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: Twisted",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy",
        "Topic :: Internet :: File Transfer Protocol (FTP)",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require=extras_require,
)
