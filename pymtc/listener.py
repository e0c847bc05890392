from abc import ABC, abstractmethod
from typing import List
import logging


class MultiTransportListener(ABC):

    @abstractmethod
    def connected(self):
        pass

    @abstractmethod
    def disconnected(self):
        pass

    def status_changed(self, state, message: str):
        """Called on every connection state change. ``state`` is a ConnectionState."""
        pass

    def message_received(self, message: dict):
        """Called with every decoded message from the current connection."""
        pass

    def catalog_changed(self, query):
        """Called when a players, tracks or sections list changed. ``query`` is the QueryKind answered."""
        pass

    def error(self, error_message: str):
        # By default, do nothing but can be overwritten to be notified of these messages.
        pass


class MultiplexingListener(MultiTransportListener):

    _listeners: List[MultiTransportListener]

    def __init__(self):
        self._listeners = []
        self._logger = logging.getLogger(__name__)

    def _dispatch(self, method: str, *args):
        # Copy so a listener may unregister itself while being notified
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception as e:
                self._logger.error(f"Exception in {method}() callback: {e}", exc_info=True)

    def connected(self):
        self._dispatch("connected")

    def disconnected(self):
        self._dispatch("disconnected")

    def status_changed(self, state, message: str):
        self._dispatch("status_changed", state, message)

    def message_received(self, message: dict):
        self._dispatch("message_received", message)

    def catalog_changed(self, query):
        self._dispatch("catalog_changed", query)

    def error(self, error_message: str):
        self._dispatch("error", error_message)

    def register_listener(self, listener: MultiTransportListener):
        self._listeners.append(listener)

    def unregister_listener(self, listener: MultiTransportListener):
        if listener in self._listeners:
            self._listeners.remove(listener)
        else:
            logging.info("Listener isn't registered")


class LoggingListener(MultiTransportListener):

    def __init__(self, logger = logging):
        self.logger = logger

    def connected(self):
        self.logger.info("Connected")

    def disconnected(self):
        self.logger.info("Disconnected")

    def status_changed(self, state, message: str):
        self.logger.info(f"Status: {state.value} {message}")

    def catalog_changed(self, query):
        self.logger.info(f"Catalog changed: {query}")

    def error(self, error_message: str):
        self.logger.error(error_message)
