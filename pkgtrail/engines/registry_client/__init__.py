"""Registry client — advisory package metadata from ecosyste.ms."""

from pkgtrail.engines.registry_client.client import EcosystemsClient, RegistryError
from pkgtrail.engines.registry_client.purl import base_purl, build_purl, parse_purl

__all__ = ["EcosystemsClient", "RegistryError", "base_purl", "build_purl", "parse_purl"]
