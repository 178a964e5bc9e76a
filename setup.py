from setuptools import setup, find_packages

setup(
    name="kube-stress-identity",
    version="0.1.0",
    description="Provision the limited IAM/EKS identity used by the kube-stress list command",
    packages=find_packages(exclude=["tests"]),
    py_modules=["stress_identity"],
    include_package_data=True,
    install_requires=[
        "click",
        "boto3",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "kube-stress-identity=stress_identity:cli",
            "ksi=stress_identity:cli",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Operating System :: Unix",
    ],
    python_requires=">=3.8",
)
