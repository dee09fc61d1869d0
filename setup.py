from setuptools import find_packages, setup


def read_requirements():
    with open("requirements.txt") as f:
        return f.read().splitlines()


setup(
    name="niritaskbar",
    version="0.1.0",
    description="Window, workspace and notification tracking for a niri taskbar",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
    ],
    python_requires=">=3.10",
    install_requires=read_requirements(),
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    scripts=["scripts/niritaskbar"],
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
)
