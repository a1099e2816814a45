from setuptools import setup, find_namespace_packages

long_description = "job_node_api"

requirements = []
with open("requirements.txt", "r") as fh:
    requirements = fh.readlines()


setup(
    name="job_node_api",
    version="1.0.0",
    author="Rogerio Alves",
    author_email="rogerioalves.ee@gmail.com",
    description="job_node_api",
    long_description=long_description,
    install_requires=requirements,
    extras_require={
        "test": ["pytest", "pytest-asyncio", "pytest-mock", "httpx"],
    },
    packages=find_namespace_packages(include=["app", "app.*"]),
    py_modules=["cli", "main"],
    python_requires=">=3.9",
    classifiers=[
        "Programming Language :: Python :: 3.9",
        "Operating System :: OS Independent",
    ],
    entry_points="""
        [console_scripts]
        jobnode=cli:main
    """,
)
