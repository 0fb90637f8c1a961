"""cgprovision: version resolution and binary provisioning for CodeGame tooling."""

__version__ = "0.1.0"
