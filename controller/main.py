"""
Volume Attach Controller Service
Polls the node inventory and reconciles EBS volume attachments
"""

import logging
import sys
import time
from typing import Optional

from providers import get_cloud_provider
from volume_sync import (
    AttachmentDriver,
    NodeCleaner,
    NodeInventory,
    NodeStatusSynchronizer,
    VolumeReconciler,
    setup_kubernetes_client,
)

from controller.config import ControllerConfig

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY_SECONDS = 60


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout
    )


def build_reconcilers(
    cfg: ControllerConfig,
    core_api=None,
    provider=None
) -> tuple[VolumeReconciler, Optional[NodeCleaner]]:
    """Wire the inventory, provider and reconcilers together"""
    if core_api is None:
        core_api = setup_kubernetes_client()
    if provider is None:
        provider = get_cloud_provider(
            cfg.cloud_provider, default_timeout=cfg.provider_timeout_seconds
        )

    inventory = NodeInventory(core_api, request_timeout=cfg.provider_timeout_seconds)
    driver = AttachmentDriver(provider, timeout=cfg.provider_timeout_seconds)
    reconciler = VolumeReconciler(
        inventory,
        driver,
        NodeStatusSynchronizer(inventory),
        volume_prefix=cfg.volume_prefix,
    )

    cleaner = None
    if cfg.node_cleanup_enabled:
        cleaner = NodeCleaner(
            inventory,
            provider,
            heartbeat_timeout=cfg.node_heartbeat_timeout_seconds,
            provider_timeout=cfg.provider_timeout_seconds,
        )

    return reconciler, cleaner


def run_once(reconciler: VolumeReconciler, cleaner: Optional[NodeCleaner] = None) -> dict:
    """Run node cleanup (if enabled) and one volume reconciliation pass"""
    results = {}
    if cleaner is not None:
        results["cleanup"] = cleaner.run_pass()
        if results["cleanup"]["removed"]:
            logger.info(f"Removed {results['cleanup']['removed']} node(s)")
    results["volumes"] = reconciler.run_pass()
    return results


def process_loop(
    cfg: ControllerConfig,
    reconciler: VolumeReconciler,
    cleaner: Optional[NodeCleaner] = None,
    sleep=time.sleep,
    max_passes: Optional[int] = None
) -> int:
    """
    Main loop - runs a pass every poll interval until interrupted.

    Returns:
        Number of passes started
    """
    logger.info("Starting volume attach controller")
    logger.info(f"Poll interval: {cfg.poll_interval_seconds}s")
    logger.info(f"Provider timeout: {cfg.provider_timeout_seconds}s")
    logger.info(f"Volume prefix: {cfg.volume_prefix}")
    logger.info(f"Node cleanup: {'enabled' if cleaner else 'disabled'}")

    retry_delay = cfg.poll_interval_seconds
    consecutive_errors = 0
    passes = 0

    while max_passes is None or passes < max_passes:
        passes += 1
        try:
            run_once(reconciler, cleaner)
            consecutive_errors = 0
            retry_delay = cfg.poll_interval_seconds
            sleep(cfg.poll_interval_seconds)

        except KeyboardInterrupt:
            logger.info("Received shutdown signal, exiting...")
            break

        except Exception as e:
            consecutive_errors += 1
            logger.error(
                f"Error in reconciliation loop (count: {consecutive_errors}): {e}",
                exc_info=True
            )

            if consecutive_errors > 3:
                logger.warning(f"Multiple consecutive errors, backing off for {retry_delay}s")
                sleep(retry_delay)
                retry_delay = min(retry_delay * 2, MAX_RETRY_DELAY_SECONDS)
            else:
                sleep(cfg.poll_interval_seconds)

    logger.info("Volume attach controller stopped")
    return passes


def main() -> int:
    cfg = ControllerConfig.from_env()
    setup_logging(cfg.log_level)

    try:
        reconciler, cleaner = build_reconcilers(cfg)
    except Exception as e:
        logger.error(f"Failed to initialize controller: {e}", exc_info=True)
        return 1

    process_loop(cfg, reconciler, cleaner)
    return 0


if __name__ == "__main__":
    sys.exit(main())
