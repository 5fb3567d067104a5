"""
Setup configuration for the x402 Facilitator
"""

from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="x402-facilitator",
    version="0.1.0",
    author="x402 Facilitator Team",
    description="x402 exact-scheme (EIP-3009) payment verification and gasless settlement",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["src", "src.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn[standard]>=0.27.0",
        "pydantic>=2.5.3",
        "pydantic-settings>=2.1.0",
        "httpx>=0.26.0",
        "web3>=7.0.0",
        "eth-account>=0.13.0",
        "eth-abi>=5.0.0",
        "structlog>=24.1.0",
        "python-dotenv>=1.0.0",
        "supabase>=2.3.4",
        "slowapi>=0.1.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "factory-boy>=3.3.0",
        ],
    },
    # Run the server directly:
    #   python -m src.facilitator.server
)
