from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .client import CloudflareClient
from ..errors import CreateError, DeleteError, FetchError, UpdateError, ZoneResolutionError
from ..utils.logger import get_logger


@dataclass
class RecordPartition:
    obsolete: List[Dict] = field(default_factory=list)
    matching: List[Dict] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


def partition_records(records: Sequence[Dict], endpoints: Sequence[str]) -> RecordPartition:
    desired = list(dict.fromkeys(endpoints))
    desired_set = set(desired)
    partition = RecordPartition()

    covered = set()
    for record in records:
        ip = record["content"]
        if ip in desired_set:
            partition.matching.append(record)
            covered.add(ip)
        else:
            partition.obsolete.append(record)

    partition.missing = [ip for ip in desired if ip not in covered]
    return partition


class CloudflareDNSPublisher:
    name = "cloudflare"

    def __init__(
        self,
        client: CloudflareClient,
        dns_name: str,
        zone_name: Optional[str] = None,
        ttl: int = 1,
        proxied: bool = False,
    ):
        self.client = client
        self.dns_name = dns_name
        self.zone_name = zone_name
        self.ttl = ttl
        self.proxied = proxied
        self.logger = get_logger(__name__)
        self._zone_id: Optional[str] = None

    async def _get_zone_id(self) -> str:
        if self._zone_id:
            return self._zone_id

        try:
            if self.zone_name:
                zone_id = await self.client.get_zone_id_by_name(self.zone_name)
            else:
                zone_id = await self.client.find_zone_id(self.dns_name)
        except Exception as e:
            raise ZoneResolutionError(self.dns_name, str(e)) from e

        if not zone_id:
            raise ZoneResolutionError(self.dns_name, "no matching zone")

        self._zone_id = zone_id
        return zone_id

    async def publish(self, endpoints: Sequence[str]) -> None:
        zone_id = await self._get_zone_id()

        try:
            records = await self.client.get_dns_records(zone_id, name=self.dns_name, record_type="A")
        except Exception as e:
            raise FetchError(zone_id, self.dns_name, str(e)) from e

        partition = partition_records(records, endpoints)
        self.logger.info(
            f"{self.dns_name}: {len(partition.obsolete)} obsolete, "
            f"{len(partition.matching)} matching, {len(partition.missing)} missing"
        )

        for record in partition.obsolete:
            try:
                await self.client.delete_dns_record(zone_id, record["id"])
            except Exception as e:
                raise DeleteError(record["id"], str(e)) from e
            self.logger.info(f"{self.dns_name}: removed {record['content']}")

        # matching records are always re-submitted so ttl and proxied follow the config
        for record in partition.matching:
            try:
                await self.client.update_dns_record(
                    zone_id,
                    record["id"],
                    name=self.dns_name,
                    content=record["content"],
                    record_type="A",
                    ttl=self.ttl,
                    proxied=self.proxied,
                )
            except Exception as e:
                raise UpdateError(record["id"], str(e)) from e

        for ip in partition.missing:
            try:
                await self.client.create_dns_record(
                    zone_id, name=self.dns_name, content=ip, record_type="A", ttl=self.ttl, proxied=self.proxied
                )
            except Exception as e:
                raise CreateError(ip, str(e)) from e
            self.logger.info(f"{self.dns_name}: added {ip}")
