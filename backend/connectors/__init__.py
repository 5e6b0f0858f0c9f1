"""Data connectors package."""
from connectors.azure_devops import AzureDevOpsConnector, create_connector
from connectors.base import BaseConnector, ConnectorError
from connectors.demo import generate_demo_data

__all__ = [
    "AzureDevOpsConnector",
    "BaseConnector",
    "ConnectorError",
    "create_connector",
    "generate_demo_data",
]
