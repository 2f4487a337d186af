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
The layer tree of a WMS service.

`LayerBuilder` objects collect the layer information while the
capabilities are parsed, `LayerBuilder.build` creates the final tree
of `BranchLayer` and `LeafLayer` objects.
"""
import threading
import weakref

from wmsview.config import base_config
from wmsview.image import MapImage
from wmsview.wms import ImageFormat


class LayerBuilder(object):
    def __init__(self, service, parent=None):
        self.service = service
        self.parent = parent
        self.name = ''
        self.title = ''
        self.description = ''
        self.crs_ids = set()
        self.children = []

    def add_crs(self, name):
        """
        Register the CRS `name` with the service and add its id to this
        layer, unless the layer already inherits it from a parent.
        """
        crs_id = self.service.add_crs(name)
        builder = self
        while builder is not None:
            if crs_id in builder.crs_ids:
                return crs_id
            builder = builder.parent
        self.crs_ids.add(crs_id)
        return crs_id

    def add_layer(self):
        child = LayerBuilder(self.service, parent=self)
        self.children.append(child)
        return child

    def has_sublayers(self):
        return bool(self.children)

    def has_crs(self):
        return bool(self.crs_ids)

    def generalize_crs_ids(self):
        """
        Move the CRS ids that all children support to this layer.
        Works depth-first, nested branches are generalized before their
        parents.
        """
        if not self.children:
            return
        for child in self.children:
            child.generalize_crs_ids()

        common = set(self.children[0].crs_ids)
        for child in self.children[1:]:
            common &= child.crs_ids
            if not common:
                return

        for child in self.children:
            child.crs_ids -= common
        self.crs_ids |= common

    def build(self, wms):
        kw = dict(
            title=self.title,
            description=self.description,
            crs_ids=self.crs_ids,
            image_format=self.service.best_image_format(),
        )
        if self.children:
            children = [child.build(wms) for child in self.children]
            return BranchLayer(wms, children, **kw)
        return LeafLayer(wms, self.name, **kw)

    def __repr__(self):
        return 'LayerBuilder(name=%r, children=%d)' % (self.name, len(self.children))


class Layer(object):
    """
    Common part of all layers.

    Each layer holds at most one downloaded `MapImage`. The image slot
    can be changed from any thread, the previous image is released
    exactly once.
    """
    def __init__(self, wms, title='', description='', crs_ids=(),
                 image_format=ImageFormat.PNG):
        layer_conf = base_config().layer
        self.wms = wms
        self.title = title
        self.description = description
        self.crs_ids = tuple(sorted(crs_ids))
        self.image_format = image_format
        self.transparent = layer_conf.transparent
        self.bgcolor = tuple(layer_conf.bgcolor)
        self.auto_update = layer_conf.auto_update
        self.visible = True
        self._parent = None
        self._image = None
        self._image_lock = threading.Lock()

    @property
    def parent(self):
        if self._parent is None:
            return None
        return self._parent()

    def _set_parent(self, parent):
        if parent is None:
            self._parent = None
        else:
            self._parent = weakref.ref(parent)

    @property
    def root(self):
        layer = self
        while layer.parent is not None:
            layer = layer.parent
        return layer

    def is_root(self):
        return self.parent is None

    def is_leaf(self):
        raise NotImplementedError()

    @property
    def children(self):
        return ()

    def __iter__(self):
        return iter(self.children)

    def iter_layers(self):
        """
        Yield this layer and all sublayers, depth-first in document order.
        """
        yield self
        for child in self.children:
            for layer in child.iter_layers():
                yield layer

    @property
    def download_one_image(self):
        return True

    def is_requested_individually(self):
        """
        ``False`` if any parent requests its whole subtree as one image.
        """
        layer = self.parent
        while layer is not None:
            if layer.download_one_image:
                return False
            layer = layer.parent
        return True

    def is_crs_supported_by_layer(self, crs_id=None):
        if crs_id is None:
            crs_id = self.wms.crs_id
        return crs_id in self.crs_ids

    def is_crs_supported_by_parents(self, crs_id=None):
        if crs_id is None:
            crs_id = self.wms.crs_id
        layer = self.parent
        while layer is not None:
            if crs_id in layer.crs_ids:
                return True
            layer = layer.parent
        return False

    def effective_crs_ids(self):
        crs_ids = set(self.crs_ids)
        layer = self.parent
        while layer is not None:
            crs_ids.update(layer.crs_ids)
            layer = layer.parent
        return crs_ids

    def visible_layer_names(self, supported_by_parents=False):
        """
        Names of all visible leaf layers below this layer that support
        the selected CRS (directly or through one of their parents).
        """
        names = []
        self._collect_visible_names(names, supported_by_parents)
        return names

    def _collect_visible_names(self, names, supported_by_parents):
        raise NotImplementedError()

    # image slot

    @property
    def image(self):
        return self._image

    @property
    def image_address(self):
        image = self._image
        if image is None:
            return None
        return image.image_address(self.wms)

    def exchange_image(self, new_image):
        with self._image_lock:
            old_image, self._image = self._image, new_image
        return old_image

    def release_image(self):
        """
        Remove the image from the slot and return it.
        """
        return self.exchange_image(None)

    def set_image(self, new_image):
        old_image = self.exchange_image(new_image)
        if old_image is not None and old_image is not new_image:
            old_image.release()

    def set_or_erase(self, new_image):
        """
        Store `new_image` only if the slot is empty, otherwise release it.
        """
        if new_image is None:
            return
        with self._image_lock:
            if self._image is None:
                self._image = new_image
                return
            if self._image is new_image:
                return
        new_image.release()

    def erase_image(self, queue=None):
        if queue is not None:
            queue.cancel(self)
        old_image = self.release_image()
        if old_image is not None:
            old_image.release()

    def erase_images_in_tree(self, queue=None):
        self.erase_image(queue)

    def erase(self, queue=None):
        """
        Remove this layer from the tree. Releases all images of the
        subtree and cancels their downloads. Parents without remaining
        sublayers are removed as well, the root layer is never removed.
        """
        self.erase_images_in_tree(queue)
        parent = self.parent
        if parent is not None:
            parent.remove(self)
            parent.erase_if_empty(queue)

    # downloading

    def map_image(self, view, names=None):
        """
        Create the `MapImage` for `view` with the selected CRS of the
        service. Returns ``None`` if no visible layer supports the CRS.
        """
        if names is None:
            names = self.visible_layer_names(self.is_crs_supported_by_parents())
        if not names:
            return None
        wms = self.wms
        return MapImage(','.join(names), wms.crs_id,
            view.limited(wms.max_width, wms.max_height),
            self.image_format,
            self.transparent and self.image_format.supports_transparency,
            self.bgcolor)

    def update(self, view, queue):
        """
        Request the images required for `view` and drop outdated ones.

        Returns a list of ``(layer, map_image)`` for all resident images
        that can be drawn for the view.
        """
        drawable = []
        self._update(view, queue, drawable)
        return drawable

    def _update(self, view, queue, drawable):
        self._update_single(view, queue, drawable)

    def _update_single(self, view, queue, drawable):
        new_image = self.map_image(view)
        if new_image is None:
            self.erase_image(queue)
            return

        wms = self.wms
        old_image = self.release_image()
        try:
            if self.visible:
                if self.auto_update and wms.downloading_enabled:
                    if old_image is None or new_image != old_image:
                        queue.submit(self, new_image, new_image.image_address(wms))
                    else:
                        # the same image is already here, a running download is outdated
                        queue.cancel(self)
                else:
                    queue.cancel(self)
                    if old_image is not None and not old_image.crs_equals(new_image):
                        old_image.release()
                        old_image = None
            elif old_image is not None and new_image != old_image:
                old_image.release()
                old_image = None
        finally:
            # a concurrently delivered image wins
            self.set_or_erase(old_image)

        image = self._image
        if self.visible and image is not None:
            drawable.append((self, image))

    def __repr__(self):
        return '%s(%r)' % (self.__class__.__name__, self.title)


class BranchLayer(Layer):
    """
    Layer with ordered sublayers. The first sublayer is rendered on top.
    """
    def __init__(self, wms, children=(), **kw):
        Layer.__init__(self, wms, **kw)
        self._download_one_image = base_config().layer.download_one_image
        self._children = []
        for child in children:
            self.append(child)

    def is_leaf(self):
        return False

    @property
    def children(self):
        return tuple(self._children)

    def has_sublayers(self):
        return bool(self._children)

    def append(self, child):
        child._set_parent(self)
        self._children.append(child)

    def remove(self, child):
        self._children.remove(child)
        child._set_parent(None)

    def move_up(self, child):
        idx = self._children.index(child)
        if idx == 0:
            return False
        self._children[idx - 1], self._children[idx] = child, self._children[idx - 1]
        return True

    def move_down(self, child):
        idx = self._children.index(child)
        if idx == len(self._children) - 1:
            return False
        self._children[idx + 1], self._children[idx] = child, self._children[idx + 1]
        return True

    def erase_if_empty(self, queue=None):
        if not self._children:
            self.erase(queue)

    @property
    def download_one_image(self):
        return self._download_one_image

    def set_download_one_image(self, value, queue):
        """
        Switch between one image for the whole subtree and individual
        images per sublayer. Images of the previous mode are dropped and
        their downloads are cancelled in `queue` (``None`` only if no
        download was ever requested for this subtree).
        """
        value = bool(value)
        if value == self._download_one_image:
            return
        self._download_one_image = value
        self.erase_images_in_tree(queue)

    def erase_images_in_tree(self, queue=None):
        self.erase_image(queue)
        for child in reversed(self._children):
            child.erase_images_in_tree(queue)

    def _collect_visible_names(self, names, supported_by_parents):
        if not supported_by_parents:
            supported_by_parents = self.is_crs_supported_by_layer()
        for child in self._children:
            if child.visible:
                child._collect_visible_names(names, supported_by_parents)

    def _update(self, view, queue, drawable):
        if self._download_one_image:
            for child in self._children:
                child.erase_images_in_tree(queue)
            self._update_single(view, queue, drawable)
        else:
            self.erase_image(queue)
            for child in self._children:
                child._update(view, queue, drawable)


class LeafLayer(Layer):
    """
    Layer that can be requested by its name.
    """
    def __init__(self, wms, name, **kw):
        if not name:
            raise ValueError('leaf layer requires a name')
        Layer.__init__(self, wms, **kw)
        self.name = name

    def is_leaf(self):
        return True

    def _collect_visible_names(self, names, supported_by_parents):
        if supported_by_parents or self.is_crs_supported_by_layer():
            names.append(self.name)

    def __repr__(self):
        return 'LeafLayer(%r)' % (self.name, )
