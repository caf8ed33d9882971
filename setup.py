from setuptools import setup, find_packages

setup(
    name="proton-quic",
    version="0.1.0",
    description="Proton: three request/response channels over one QUIC connection",
    packages=find_packages(include=["proton_quic", "proton_quic.*"]),
    python_requires=">=3.10",
    install_requires=[
        "aioquic>=1.2.0",
        "cryptography>=42.0",
        "aioconsole==0.8.1",
        "python-dotenv==1.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.3.0",
            "pytest-asyncio>=0.23",
            "black",
            "ruff",
        ]
    },
    entry_points={
        "console_scripts": [
            "proton=proton_quic.cli:main",
        ]
    },
    include_package_data=True,
    zip_safe=False,
)
