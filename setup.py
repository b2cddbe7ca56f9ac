"""
Setup configuration for the landmark residual package.
"""

from setuptools import setup, find_packages

setup(
    name="slam-landmark-residual",
    version="0.1.0",
    description="Landmark pose residual between interpolated trajectory nodes with automatic differentiation",
    author="SLAM Sim Team",
    packages=find_packages(include=["landmark_residual", "landmark_residual.*", "tools", "tools.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.10.0",
        "jax>=0.4.20",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.3.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.3.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "landmark-residual=tools.cli:main",
        ],
    },
)
