import asyncio
import logging
import typing

from kubernetes_asyncio import client, config

logger = logging.getLogger(__name__)


class KubernetesClients:
    """
    Loads the Kubernetes configuration once per instance and hands out API objects.

    The collectors of a single collection share one instance, so configuration
    loading happens at most once per run without any process-wide state.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._loaded = False
        self._core_api = None
        self._custom_api = None

    async def ensure_config(self) -> bool:
        """
        Ensures that the Kubernetes configuration is loaded exactly once.

        Returns:
            bool: True if config was loaded successfully (or was already loaded), False otherwise.
        """
        if self._loaded:
            return True

        async with self._lock:
            # Double-check locking pattern
            if self._loaded:
                return True

            # Try in-cluster config first
            try:
                logger.debug("Attempting to load in-cluster Kubernetes config...")
                config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes configuration.")
                self._loaded = True
                return True
            except config.ConfigException:
                logger.debug("In-cluster config not found.")
            except Exception as e:
                logger.warning("Unexpected error loading in-cluster config: %s", e)

            # Try local kubeconfig
            try:
                logger.debug("Attempting to load local kubeconfig...")
                await config.load_kube_config()
                logger.info("Loaded Kubernetes configuration from kubeconfig file.")
                self._loaded = True
                return True
            except config.ConfigException:
                logger.warning("Could not find kubeconfig file.")
            except Exception as e:
                logger.warning("Unexpected error loading kubeconfig: %s", e)

        logger.warning("Failed to load any Kubernetes configuration.")
        return False

    async def core_v1(self) -> typing.Optional[client.CoreV1Api]:
        if self._core_api is None and await self.ensure_config():
            self._core_api = client.CoreV1Api()
        return self._core_api

    async def custom_objects(self) -> typing.Optional[client.CustomObjectsApi]:
        if self._custom_api is None and await self.ensure_config():
            self._custom_api = client.CustomObjectsApi()
        return self._custom_api

    async def close(self):
        """Close the underlying API clients if they were created."""
        for api in (self._core_api, self._custom_api):
            if api is not None:
                await api.api_client.close()
        self._core_api = None
        self._custom_api = None
