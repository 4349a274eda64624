from .client import CloudflareClient
from .publisher import CloudflareDNSPublisher, RecordPartition, partition_records

__all__ = ["CloudflareClient", "CloudflareDNSPublisher", "RecordPartition", "partition_records"]
