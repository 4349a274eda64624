import asyncio
import signal
import sys

from .broadcast import Broadcaster
from .cloudflare_dns import CloudflareClient, CloudflareDNSPublisher
from .config import Config
from .errors import IPWatchError
from .kube import KubeClient, MemberInformer
from .notifier import ChangeNotifier
from .service import EndpointService
from .telegram import TelegramPublisher
from .utils.logger import setup_logger


def build_informer(config: Config) -> MemberInformer:
    kube_client = KubeClient(in_cluster=config.in_cluster, kubeconfig=config.kubeconfig)
    return MemberInformer(kube_client, resync_period=config.resync_period, watch_timeout=config.watch_timeout)


def build_publishers(config: Config, logger) -> list:
    publishers = []

    if config.dns_enabled:
        cloudflare_client = CloudflareClient(api_token=config.cloudflare_token)
        publishers.append(
            CloudflareDNSPublisher(
                client=cloudflare_client,
                dns_name=config.dns_name,
                zone_name=config.dns_zone,
                ttl=config.dns_ttl,
                proxied=config.dns_proxied,
            )
        )
    else:
        logger.info("Cloudflare DNS publishing is disabled")

    if config.telegram_enabled and config.telegram_bot_token and config.telegram_chat_id:
        publishers.append(
            TelegramPublisher(
                bot_token=config.telegram_bot_token,
                chat_id=config.telegram_chat_id,
                topic_id=config.telegram_topic_id,
                dns_name=config.dns_name,
            )
        )
    else:
        logger.info("Telegram notifications are disabled")

    return publishers


async def close_publishers(publishers: list, logger) -> None:
    for publisher in publishers:
        try:
            if isinstance(publisher, CloudflareDNSPublisher):
                await publisher.client.close()
            elif isinstance(publisher, TelegramPublisher):
                await publisher.close()
        except Exception as e:
            logger.warning(f"Error closing {publisher.name}: {e}")


async def main():
    config = Config()

    logger = setup_logger(name="ipwatch", level=config.log_level, log_file=config.log_file)

    if not config.dns_name:
        logger.error("dns.name is not configured")
        sys.exit(1)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    logger.info(f"Starting ipwatch for {config.dns_name}")
    logger.info(f"Node selector: {config.node_selector or '<all>'}")

    publishers = build_publishers(config, logger)

    try:
        informer = build_informer(config)
        notifier = ChangeNotifier(informer, selector=config.node_selector, buffer_size=config.buffer_size)
        broadcaster = Broadcaster(publishers, timeout=config.broadcast_timeout)
        service = EndpointService(notifier, broadcaster, retry_interval=config.retry_interval)

        await service.run(stop)
    except IPWatchError as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await close_publishers(publishers, logger)

    logger.info("ipwatch stopped")


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
