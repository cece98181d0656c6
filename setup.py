"""Module for setup tools.

Update install_requires list with
additional aws-cdk modules as required.
"""
import setuptools


with open("README.md") as fp:
    long_description = fp.read()

setuptools.setup(
    name="cdk_compose",
    version="0.1.0",

    description="Declarative CDK stack composition with name resolution",
    long_description=long_description,
    long_description_content_type="text/markdown",

    packages=setuptools.find_namespace_packages(include=["cdk_compose*"]),
    include_package_data=True,
    package_data={"cdk_compose.stacks": ["assets/*/*.py"]},

    install_requires=[
        "aws-cdk-lib>=2.160.0",
        "constructs>=10.0.0",
        "cdk-nag",
        "boto3",
        "structlog>=23.1.0",
    ],

    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },

    python_requires=">=3.9",

    classifiers=[
        "Development Status :: 4 - Beta",

        "Intended Audience :: Developers",

        "Programming Language :: Python :: 3",

        "Topic :: Software Development :: Code Generators",
        "Topic :: Utilities",

        "Typing :: Typed",
    ],
)
