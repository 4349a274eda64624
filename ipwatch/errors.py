from typing import List, Optional


class IPWatchError(Exception):
    pass


class InvalidSelector(IPWatchError):
    def __init__(self, selector: str, reason: str):
        self.selector = selector
        self.reason = reason
        super().__init__(f"invalid node selector {selector!r}: {reason}")


class SourceUnavailable(IPWatchError):
    pass


class PublishError(IPWatchError):
    publisher = "publisher"

    def __init__(self, message: str):
        super().__init__(f"{self.publisher}: {message}")


class DNSPublishError(PublishError):
    publisher = "cloudflare"


class ZoneResolutionError(DNSPublishError):
    def __init__(self, dns_name: str, reason: Optional[str] = None):
        self.dns_name = dns_name
        message = f"unable to determine the zone for dns={dns_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FetchError(DNSPublishError):
    def __init__(self, zone_id: str, dns_name: str, reason: str):
        self.zone_id = zone_id
        self.dns_name = dns_name
        super().__init__(f"failed to fetch A-records for zone_id={zone_id}, dns={dns_name}: {reason}")


class DeleteError(DNSPublishError):
    def __init__(self, record_id: str, reason: str):
        self.record_id = record_id
        super().__init__(f"failed to delete record id={record_id}: {reason}")


class UpdateError(DNSPublishError):
    def __init__(self, record_id: str, reason: str):
        self.record_id = record_id
        super().__init__(f"failed to update record id={record_id}: {reason}")


class CreateError(DNSPublishError):
    def __init__(self, ip: str, reason: str):
        self.ip = ip
        super().__init__(f"failed to create record ip={ip}: {reason}")


class SendError(PublishError):
    publisher = "telegram"


class AggregateError(IPWatchError):
    SEPARATOR = "\n-----------------------\n"

    def __init__(self, errors: List[BaseException]):
        self.errors = list(errors)
        joined = self.SEPARATOR.join(str(e) for e in self.errors)
        super().__init__(f"multiple errors occurred during broadcasting:\n{joined}")
