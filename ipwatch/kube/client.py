import socket
import threading
from typing import Iterator, List, Optional, Tuple

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from .models import Member
from ..utils.logger import get_logger

HTTP_GONE = 410
NODE_TYPE = "V1Node"


class WatchExpired(Exception):
    pass


class KubeClient:
    def __init__(self, in_cluster: bool = True, kubeconfig: Optional[str] = None, api: Optional[client.CoreV1Api] = None):
        self.logger = get_logger(__name__)

        if api is None:
            if in_cluster:
                config.load_incluster_config()
                self.logger.info("Loaded in-cluster Kubernetes configuration")
            else:
                config.load_kube_config(config_file=kubeconfig or None)
                self.logger.info(f"Loaded Kubernetes configuration from {kubeconfig or 'default kubeconfig'}")
            api = client.CoreV1Api()

        self.api = api
        self._lock = threading.Lock()
        self._watch: Optional[watch.Watch] = None
        self._response = None

    def list_nodes(self) -> Tuple[List[Member], str]:
        try:
            response = self.api.list_node()
        except Exception as e:
            self.logger.error(f"Error listing nodes: {e}")
            raise

        members = [Member.from_node(node) for node in response.items or []]
        resource_version = response.metadata.resource_version
        self.logger.debug(f"Listed {len(members)} nodes at resourceVersion={resource_version}")
        return members, resource_version

    def watch_nodes(self, resource_version: str, timeout_seconds: int = 60) -> Iterator[Tuple[str, Optional[Member], str]]:
        active = watch.Watch(return_type=NODE_TYPE)
        with self._lock:
            self._watch = active
            self._response = None

        def list_node(*args, **kwargs):
            response = self.api.list_node(*args, **kwargs)
            with self._lock:
                if self._watch is active:
                    self._response = response
            return response

        try:
            stream = active.stream(
                list_node,
                resource_version=resource_version,
                timeout_seconds=timeout_seconds,
                allow_watch_bookmarks=True,
            )
            for event in stream:
                event_type = event["type"]
                raw = event.get("raw_object") or {}
                version = raw.get("metadata", {}).get("resourceVersion", resource_version)

                if event_type == "ERROR":
                    code = raw.get("code")
                    if code == HTTP_GONE:
                        raise WatchExpired(raw.get("message", "resource version expired"))
                    raise ApiException(status=code, reason=raw.get("message"))

                if event_type == "BOOKMARK":
                    yield event_type, None, version
                    continue

                yield event_type, Member.from_node(event["object"]), version
        except ApiException as e:
            if e.status == HTTP_GONE:
                raise WatchExpired(str(e.reason)) from e
            raise
        finally:
            with self._lock:
                if self._watch is active:
                    self._watch = None
                    self._response = None

    def stop_watch(self) -> None:
        with self._lock:
            active, response = self._watch, self._response
        if active is None:
            return

        active.stop()
        if response is not None:
            self._abort(response)

    def _abort(self, response) -> None:
        # unblocks a reader waiting on the socket; the stream closes the response itself
        connection = getattr(response, "connection", None) or getattr(response, "_connection", None)
        sock = getattr(connection, "sock", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            self.logger.debug(f"Watch connection already closed: {e}")
