from setuptools import setup, find_packages
setup(
    name="carrier_ingest",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "parsel",
        "httpx",
        "fastapi",
        "pydantic",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        'console_scripts': [
            'carrier_ingest=carrier_ingest.__main__:main'
        ]
    }
)
