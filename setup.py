# Packaging for the RDMA prometheus exporter. The exporter runs as a single
# gunicorn worker serving a Flask application; "pip install .[test]" pulls in
# the test dependencies as well.

from setuptools import find_packages, setup

setup(
    name="rdma-exporter",
    version="0.3.0",
    description="Prometheus exporter for RDMA device counters",
    license="MIT",
    python_requires=">=3.8",
    packages=find_packages(include=["rdma_exporter", "rdma_exporter.*"]),
    install_requires=[
        "flask",
        "gunicorn",
        "prometheus_client",
    ],
    extras_require={
        "test": [
            "pytest",
            "requests",
        ],
    },
    entry_points={
        "console_scripts": [
            "rdma-exporter=rdma_exporter.node_monitoring:main",
        ],
    },
)
