"""Keepalive reconciliation between Sensu entities and Chef nodes."""

from __future__ import annotations

import logging
from typing import Protocol

from .config import HandlerConfig
from .errors import ChefLookupError
from .models import EntityRef, Event, HandlerOutcome, NodeLookup, NodeStatus
from .validation import check_args

logger = logging.getLogger("sensu_chef_handler.handler")


class NodeInventory(Protocol):
    """Source of truth for which nodes should be monitored."""

    def lookup_node(self, node_name: str) -> NodeLookup:
        """Report whether the node exists."""


class EntityStore(Protocol):
    """Monitoring backend that owns the entities."""

    def remove_entity(self, entity: EntityRef) -> HandlerOutcome:
        """Delete the entity, tolerating one that is already gone."""


class EventHandler(Protocol):
    """Given an event, return an outcome or raise a HandlerError."""

    def handle(self, event: Event) -> HandlerOutcome:
        ...


def chef_node_name(event: Event) -> str:
    return event.entity.name


class KeepaliveHandler(EventHandler):
    """Removes the Sensu entity of a keepalive event whose Chef node is gone."""

    def __init__(
        self,
        config: HandlerConfig,
        *,
        inventory: NodeInventory,
        entities: EntityStore,
    ) -> None:
        self._config = config
        self._inventory = inventory
        self._entities = entities

    def validate(self, event: Event) -> None:
        check_args(self._config, event)

    def handle(self, event: Event) -> HandlerOutcome:
        self.validate(event)

        node_name = chef_node_name(event)
        lookup = self._inventory.lookup_node(node_name)
        if lookup.status is NodeStatus.INDETERMINATE:
            raise ChefLookupError(lookup.error or f"chef lookup for {node_name} failed")
        if lookup.should_keep:
            logger.info("chef node exists: %s", node_name)
            return HandlerOutcome.NODE_EXISTS

        logger.info("chef node does not exist, removing the sensu entity")
        return self._entities.remove_entity(event.entity)
