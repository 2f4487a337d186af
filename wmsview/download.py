# This file is part of the WMSView project.
# Copyright (C) 2026 The WMSView developers
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Background download of map images.

The `DownloadQueue` holds at most one outstanding request per layer
and fetches them one after another in a single worker thread.
"""
import threading

from wmsview.client.http import HTTPClient, HTTPClientError, FetchCancelled
from wmsview.image import decode_image, ImageDecodeError

import logging
log = logging.getLogger('wmsview.download')


class _Task(object):
    __slots__ = ('layer', 'uri', 'image')

    def __init__(self, layer, uri, image):
        self.layer = layer
        self.uri = uri
        self.image = image

    def __repr__(self):
        return '_Task(%r, %r)' % (self.layer, self.uri)


class DownloadWorker(threading.Thread):
    def __init__(self, queue):
        threading.Thread.__init__(self, name='wmsview-download')
        self.daemon = True
        self.queue = queue

    def run(self):
        queue = self.queue
        while True:
            queue._wake.clear()
            task, stop = queue._next_task()
            if stop:
                break
            if task is None:
                queue._wake.wait()
                continue
            queue._process(task)
        log.debug('download worker stopped')


class DownloadQueue(object):
    """
    Queue of map image downloads.

    `submit` replaces any older request of the same layer. A request
    that is already in progress is invalidated and its result dropped
    when it arrives. Downloaded images are stored in the layer with
    `Layer.set_image` and `on_delivery` is called with the layer.

    The pending requests and the active request are protected by two
    locks, always acquired in this order. No lock is held while the
    image is downloaded.
    """
    def __init__(self, http_client=None, on_delivery=None):
        if http_client is None:
            http_client = HTTPClient()
        self.http_client = http_client
        self.on_delivery = on_delivery
        self._pending = {}
        self._pending_lock = threading.Lock()
        self._current = None
        self._task_lock = threading.Lock()
        self._wake = threading.Event()
        self._shutdown = False
        self._worker = DownloadWorker(self)
        self._worker.start()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()

    def submit(self, layer, image, uri):
        """
        Request the download of `image` from `uri` for `layer`.
        The queue takes ownership of `image`.
        """
        unused = []
        with self._pending_lock:
            if self._shutdown:
                log.debug('download queue is shut down, dropping request for %r', layer)
                unused.append(image)
            else:
                self._submit(layer, image, uri, unused)
        for img in unused:
            img.release()

    def _submit(self, layer, image, uri, unused):
        with self._task_lock:
            current = self._current
            if current is not None and current.layer is layer:
                if current.image == image:
                    # requested image is already in progress
                    unused.append(image)
                    return
                log.debug('invalidating outdated download %s', current.uri)
                self._current = None

        task = self._pending.get(layer)
        if task is not None:
            if task.image == image:
                unused.append(image)
                return
            unused.append(task.image)
        self._pending[layer] = _Task(layer, uri, image)
        self._wake.set()

    def cancel(self, layer):
        """
        Drop the pending request of `layer` or invalidate its running
        download.
        """
        with self._pending_lock:
            with self._task_lock:
                current = self._current
                if current is not None and current.layer is layer:
                    log.debug('cancelling download %s', current.uri)
                    self._current = None
            task = self._pending.pop(layer, None)
        if task is not None:
            task.image.release()

    def pending_layers(self):
        with self._pending_lock:
            return list(self._pending)

    def active_layer(self):
        with self._task_lock:
            if self._current is None:
                return None
            return self._current.layer

    @property
    def is_shutdown(self):
        return self._shutdown

    def shutdown(self, timeout=None):
        """
        Stop the worker. All pending requests are dropped and a running
        download is invalidated. Can be called more than once.
        """
        with self._pending_lock:
            self._shutdown = True
            pending = list(self._pending.values())
            self._pending.clear()
            with self._task_lock:
                self._current = None
        for task in pending:
            task.image.release()
        self._wake.set()
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout)

    def _next_task(self):
        """
        Move any pending request to the active slot.
        Returns ``(task, stop)``.
        """
        with self._pending_lock:
            if self._shutdown:
                return None, True
            if not self._pending:
                return None, False
            _layer, task = self._pending.popitem()
            with self._task_lock:
                self._current = task
            return task, False

    def _process(self, task):
        if task.uri is None:
            log.warning('no request URL for layer %r', task.layer)
            self._discard(task)
            return

        try:
            data = self.http_client.fetch_image(task.uri,
                cancelled=lambda: self._current is not task)
            img = decode_image(data)
        except FetchCancelled:
            log.debug('download %s cancelled', task.uri)
            self._discard(task)
            return
        except (HTTPClientError, ImageDecodeError) as ex:
            log.warning('unable to download image for layer %r: %s', task.layer, ex)
            self._discard(task)
            return
        except Exception:
            log.exception('unexpected error while downloading %s', task.uri)
            self._discard(task)
            return

        delivered = False
        with self._task_lock:
            if self._current is task:
                self._current = None
                try:
                    task.image.assign_data(img)
                    task.layer.set_image(task.image)
                except Exception:
                    log.exception('unable to deliver image for layer %r', task.layer)
                    if getattr(task.layer, 'image', None) is not task.image:
                        task.image.release()
                    return
                delivered = True

        if not delivered:
            log.debug('dropping outdated image %s', task.uri)
            img.close()
            task.image.release()
            return

        if self.on_delivery is not None:
            try:
                self.on_delivery(task.layer)
            except Exception:
                log.exception('error in delivery callback for layer %r', task.layer)

    def _discard(self, task):
        with self._task_lock:
            if self._current is task:
                self._current = None
        task.image.release()
