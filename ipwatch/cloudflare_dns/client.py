import asyncio
import time
from typing import Any, Dict, List, Optional

from cloudflare import AsyncCloudflare

from ..utils.logger import get_logger


def _record_to_dict(record: Any) -> Dict:
    return {
        "id": record.id,
        "name": record.name,
        "content": record.content,
        "type": record.type,
        "ttl": record.ttl,
        "proxied": record.proxied,
    }


class CloudflareClient:
    def __init__(self, api_token: str, rate_limit_delay: float = 0.25, cf: Optional[AsyncCloudflare] = None):
        self.logger = get_logger(__name__)
        self.cf = cf if cf is not None else AsyncCloudflare(api_token=api_token)
        self.rate_limit_delay = rate_limit_delay
        self._last_request_time: float = 0
        self._rate_lock = asyncio.Lock()

    async def _rate_limit(self) -> None:
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self.rate_limit_delay:
                await asyncio.sleep(self.rate_limit_delay - elapsed)
            self._last_request_time = time.monotonic()

    async def get_zone_id_by_name(self, zone_name: str) -> Optional[str]:
        await self._rate_limit()
        async for zone in self.cf.zones.list(name=zone_name):
            self.logger.debug(f"Found zone_id for {zone_name}: {zone.id}")
            return zone.id
        return None

    async def find_zone_id(self, dns_name: str) -> Optional[str]:
        labels = dns_name.rstrip(".").split(".")
        # most specific candidate first, never the bare TLD
        for i in range(len(labels) - 1):
            candidate = ".".join(labels[i:])
            zone_id = await self.get_zone_id_by_name(candidate)
            if zone_id:
                self.logger.info(f"Zone for {dns_name} is {candidate} ({zone_id})")
                return zone_id

        self.logger.error(f"No zone found for dns name: {dns_name}")
        return None

    async def get_dns_records(self, zone_id: str, name: str = None, record_type: str = "A") -> List[Dict]:
        await self._rate_limit()
        params = {"type": record_type}
        if name:
            params["name"] = name

        records_list = []
        async for record in self.cf.dns.records.list(zone_id=zone_id, **params):
            records_list.append(_record_to_dict(record))

        self.logger.debug(f"Found {len(records_list)} {record_type} records for {name or zone_id}")
        return records_list

    async def create_dns_record(
        self, zone_id: str, name: str, content: str, record_type: str = "A", ttl: int = 1, proxied: bool = False
    ) -> Dict:
        await self._rate_limit()
        record = await self.cf.dns.records.create(
            zone_id=zone_id, type=record_type, name=name, content=content, ttl=ttl, proxied=proxied
        )
        self.logger.info(f"Created DNS record: {name} -> {content}")
        return _record_to_dict(record)

    async def update_dns_record(
        self,
        zone_id: str,
        record_id: str,
        name: str,
        content: str,
        record_type: str = "A",
        ttl: int = 1,
        proxied: bool = False,
    ) -> Dict:
        await self._rate_limit()
        record = await self.cf.dns.records.update(
            dns_record_id=record_id,
            zone_id=zone_id,
            type=record_type,
            name=name,
            content=content,
            ttl=ttl,
            proxied=proxied,
        )
        self.logger.info(f"Updated DNS record: {name} -> {content}")
        return _record_to_dict(record)

    async def delete_dns_record(self, zone_id: str, record_id: str) -> None:
        await self._rate_limit()
        await self.cf.dns.records.delete(dns_record_id=record_id, zone_id=zone_id)
        self.logger.info(f"Deleted DNS record: {record_id}")

    async def close(self) -> None:
        await self.cf.close()
