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

import gc

import pytest

from wmsview.image import MapImage, View
from wmsview.layer import LayerBuilder, BranchLayer, LeafLayer
from wmsview.wms import ServiceBuilder, ImageFormat


class RecordingQueue(object):
    def __init__(self):
        self.submitted = []
        self.cancelled = []

    def submit(self, layer, image, uri):
        self.submitted.append((layer, image, uri))

    def cancel(self, layer):
        self.cancelled.append(layer)


class CountingImage(object):
    def __init__(self):
        self.released = 0

    def release(self):
        self.released += 1


class ImageData(object):
    def __init__(self):
        self.closed = 0

    def close(self):
        self.closed += 1


def build_wms(tree, crs=('EPSG:4326', 'EPSG:3857')):
    """
    Build a `Wms` from nested ``(name, [crs], [children])`` tuples.
    The CRS names of `crs` are registered first in this order.
    """
    service = ServiceBuilder('http://localhost/service')
    service.add_image_format('image/png')
    for name in crs:
        service.add_crs(name)

    def fill(builder, node):
        name, crs_names, children = node
        builder.name = name or ''
        builder.title = name or 'group'
        for crs_name in crs_names:
            builder.add_crs(crs_name)
        for child in children:
            fill(builder.add_layer(), child)

    fill(service.make_layer_builder(), tree)
    service.layer.generalize_crs_ids()
    return service.build()


class TestLayerBuilder(object):
    def test_add_crs_inherited(self):
        service = ServiceBuilder()
        root = service.make_layer_builder()
        root.add_crs('EPSG:4326')
        child = root.add_layer()
        assert child.add_crs('EPSG:4326') == 0
        assert child.crs_ids == set()
        assert child.add_crs('EPSG:3857') == 1
        assert child.crs_ids == {1}
        grandchild = child.add_layer()
        grandchild.add_crs('EPSG:3857')
        grandchild.add_crs('EPSG:4326')
        assert grandchild.crs_ids == set()

    def test_children_order(self):
        service = ServiceBuilder()
        root = service.make_layer_builder()
        first = root.add_layer()
        second = root.add_layer()
        assert root.children == [first, second]
        assert root.has_sublayers()
        assert not first.has_sublayers()
        assert first.parent is root

    def test_generalize_common_crs(self):
        service = ServiceBuilder()
        root = service.make_layer_builder()
        a = root.add_layer()
        b = root.add_layer()
        a.crs_ids.update([0, 1, 2])
        b.crs_ids.update([1, 2, 3])
        root.generalize_crs_ids()
        assert root.crs_ids == {1, 2}
        assert a.crs_ids == {0}
        assert b.crs_ids == {3}

    def test_generalize_nothing_common(self):
        service = ServiceBuilder()
        root = service.make_layer_builder()
        a = root.add_layer()
        b = root.add_layer()
        c = root.add_layer()
        a.crs_ids.update([0, 1])
        b.crs_ids.update([1, 2])
        c.crs_ids.update([0, 2])
        root.generalize_crs_ids()
        assert root.crs_ids == set()
        assert (a.crs_ids, b.crs_ids, c.crs_ids) == ({0, 1}, {1, 2}, {0, 2})

    def test_generalize_depth_first(self):
        service = ServiceBuilder()
        root = service.make_layer_builder()
        group = root.add_layer()
        a = group.add_layer()
        b = group.add_layer()
        c = root.add_layer()
        a.crs_ids.update([0, 1])
        b.crs_ids.update([0, 1, 2])
        c.crs_ids.update([0])
        root.generalize_crs_ids()
        assert root.crs_ids == {0}
        assert group.crs_ids == {1}
        assert (a.crs_ids, b.crs_ids, c.crs_ids) == (set(), {2}, set())

    def test_generalize_leaf(self):
        service = ServiceBuilder()
        root = service.make_layer_builder()
        root.crs_ids.add(0)
        root.generalize_crs_ids()
        assert root.crs_ids == {0}

    def test_generalize_property(self):
        service = ServiceBuilder()
        root = service.make_layer_builder()
        sets = [{0, 1, 2, 5}, {1, 2, 3, 5}, {2, 4, 5}, {2, 5, 6}]
        children = []
        for crs_ids in sets:
            child = root.add_layer()
            child.crs_ids.update(crs_ids)
            children.append(child)
        common = set.intersection(*sets)
        root.generalize_crs_ids()
        assert root.crs_ids == common
        for child, before in zip(children, sets):
            assert child.crs_ids == before - common
            assert not (child.crs_ids & common)

    def test_build(self):
        wms = build_wms(('root', ['EPSG:4326'], [('a', [], []), ('b', ['EPSG:3857'], [])]))
        root = wms.layer
        assert isinstance(root, BranchLayer)
        assert not root.is_leaf()
        a, b = root.children
        assert isinstance(a, LeafLayer) and a.is_leaf()
        assert (a.name, b.name) == ('a', 'b')
        assert a.parent is root
        assert root.parent is None
        assert a.image_format is ImageFormat.PNG
        assert list(root) == [a, b]
        assert list(root.iter_layers()) == [root, a, b]

    def test_leaf_requires_name(self):
        with pytest.raises(ValueError):
            build_wms((None, ['EPSG:4326'], []))


class TestLayerTree(object):
    def setup_method(self):
        self.wms = build_wms(
            ('root', ['EPSG:4326'], [
                ('group', [], [
                    ('x', [], []),
                    ('y', ['EPSG:3857'], []),
                ]),
                ('z', [], []),
            ]))
        self.root = self.wms.layer
        self.group, self.z = self.root.children
        self.x, self.y = self.group.children

    def test_parent_is_weak(self):
        x = self.x
        assert x.parent is self.group
        self.root.remove(self.group)
        del self.group
        self.wms.layer = None
        del self.root
        gc.collect()
        assert x.parent is None

    def test_crs_supported(self):
        assert self.root.is_crs_supported_by_layer()
        assert not self.x.is_crs_supported_by_layer()
        assert self.x.is_crs_supported_by_parents()
        assert not self.root.is_crs_supported_by_parents()
        assert self.y.is_crs_supported_by_layer(1)
        assert not self.x.is_crs_supported_by_parents(1)
        assert self.y.effective_crs_ids() == {0, 1}
        assert self.x.effective_crs_ids() == {0}

    def test_visible_layer_names(self):
        assert self.root.visible_layer_names() == ['x', 'y', 'z']
        self.z.visible = False
        assert self.root.visible_layer_names() == ['x', 'y']
        self.group.visible = False
        assert self.root.visible_layer_names() == []

    def test_visible_layer_names_by_crs(self):
        self.wms.crs_id = 1
        assert self.root.visible_layer_names() == ['y']
        assert self.group.visible_layer_names(self.group.is_crs_supported_by_parents()) == ['y']
        self.wms.crs_id = 0
        assert self.group.visible_layer_names() == []
        assert self.group.visible_layer_names(supported_by_parents=True) == ['x', 'y']

    def test_requested_individually(self):
        assert self.root.is_requested_individually()
        assert not self.x.is_requested_individually()
        self.root.set_download_one_image(False, None)
        assert self.group.is_requested_individually()
        assert not self.x.is_requested_individually()
        self.group.set_download_one_image(False, None)
        assert self.x.is_requested_individually()
        assert self.x.download_one_image

    def test_move(self):
        assert self.root.children == (self.group, self.z)
        assert self.root.move_down(self.group)
        assert self.root.children == (self.z, self.group)
        assert not self.root.move_down(self.group)
        assert self.root.move_up(self.group)
        assert not self.root.move_up(self.group)
        assert self.root.children == (self.group, self.z)

    def test_remove(self):
        self.group.remove(self.x)
        assert self.group.children == (self.y, )
        assert self.x.parent is None
        assert self.x.is_root()


class TestImageSlot(object):
    def setup_method(self):
        self.wms = build_wms(('a', ['EPSG:4326'], []))
        self.layer = self.wms.layer

    def test_exchange(self):
        first = CountingImage()
        second = CountingImage()
        assert self.layer.exchange_image(first) is None
        assert self.layer.exchange_image(second) is first
        assert self.layer.image is second
        assert first.released == 0

    def test_set_image_releases_old(self):
        first = CountingImage()
        second = CountingImage()
        self.layer.set_image(first)
        self.layer.set_image(second)
        assert first.released == 1
        assert second.released == 0
        self.layer.set_image(second)
        assert second.released == 0

    def test_release_image(self):
        img = CountingImage()
        self.layer.set_image(img)
        assert self.layer.release_image() is img
        assert self.layer.image is None
        assert img.released == 0

    def test_set_or_erase(self):
        first = CountingImage()
        second = CountingImage()
        self.layer.set_or_erase(first)
        assert self.layer.image is first
        self.layer.set_or_erase(second)
        assert self.layer.image is first
        assert second.released == 1
        self.layer.set_or_erase(None)
        assert self.layer.image is first

    def test_erase_image(self):
        queue = RecordingQueue()
        img = CountingImage()
        self.layer.set_image(img)
        self.layer.erase_image(queue)
        assert self.layer.image is None
        assert img.released == 1
        assert queue.cancelled == [self.layer]
        self.layer.erase_image(queue)
        assert img.released == 1

    def test_image_address(self):
        assert self.layer.image_address is None
        img = MapImage('a', 0, View((0, 0, 10, 10), (100, 100)), ImageFormat.PNG)
        self.layer.set_image(img)
        assert self.layer.image_address.startswith('http://localhost/service?')


class TestErase(object):
    def setup_method(self):
        self.wms = build_wms(
            ('root', ['EPSG:4326'], [
                ('group', [], [
                    ('x', [], []),
                    ('y', [], []),
                ]),
                ('z', [], []),
            ]))
        self.root = self.wms.layer
        self.group, self.z = self.root.children
        self.x, self.y = self.group.children
        self.images = {}
        for layer in self.root.iter_layers():
            self.images[layer] = CountingImage()
            layer.set_image(self.images[layer])

    def test_erase_images_in_tree(self):
        queue = RecordingQueue()
        self.group.erase_images_in_tree(queue)
        assert set(queue.cancelled) == {self.group, self.x, self.y}
        for layer in (self.group, self.x, self.y):
            assert layer.image is None
            assert self.images[layer].released == 1
        assert self.root.image is self.images[self.root]

    def test_erase_leaf(self):
        queue = RecordingQueue()
        self.x.erase(queue)
        assert self.group.children == (self.y, )
        assert self.images[self.x].released == 1
        assert queue.cancelled == [self.x]
        assert self.x.parent is None

    def test_erase_cascade(self):
        queue = RecordingQueue()
        self.x.erase(queue)
        self.y.erase(queue)
        # group became empty and is removed as well
        assert self.root.children == (self.z, )
        assert self.group.parent is None
        assert self.images[self.group].released == 1
        self.z.erase(queue)
        assert self.root.children == ()
        # root is never detached
        assert self.wms.layer is self.root
        assert self.images[self.root].released == 1
        assert set(queue.cancelled) == {self.root, self.group, self.x, self.y, self.z}

    def test_erase_branch(self):
        queue = RecordingQueue()
        self.group.erase(queue)
        assert self.root.children == (self.z, )
        for layer in (self.group, self.x, self.y):
            assert self.images[layer].released == 1
        assert self.images[self.z].released == 0

    def test_erase_without_queue(self):
        self.x.erase()
        assert self.images[self.x].released == 1

    def test_toggle_download_one_image(self):
        queue = RecordingQueue()
        self.group.set_download_one_image(True, queue)
        assert queue.cancelled == []
        self.group.set_download_one_image(False, queue)
        assert set(queue.cancelled) == {self.group, self.x, self.y}
        assert self.images[self.x].released == 1
        assert self.images[self.group].released == 1
        assert not self.group.download_one_image


class TestUpdate(object):
    def setup_method(self):
        self.wms = build_wms(
            ('root', ['EPSG:4326'], [
                ('a', [], []),
                ('b', ['EPSG:3857'], []),
            ]))
        self.root = self.wms.layer
        self.a, self.b = self.root.children
        self.view = View((0, 0, 10, 5), (200, 100))
        self.queue = RecordingQueue()

    def resident_image(self, layer, image):
        image.assign_data(ImageData())
        layer.set_image(image)
        return image

    def test_request_one_image(self):
        drawable = self.root.update(self.view, self.queue)
        assert drawable == []
        [(layer, image, uri)] = self.queue.submitted
        assert layer is self.root
        assert image.layers == 'a,b'
        assert image.crs_id == 0
        assert image.view == self.view
        assert image.image_format is ImageFormat.PNG
        assert uri == image.image_address(self.wms)
        assert set(self.queue.cancelled) == {self.a, self.b}

    def test_request_individual_images(self):
        self.root.set_download_one_image(False, self.queue)
        self.root.update(self.view, self.queue)
        submitted = [(layer, image.layers) for layer, image, _uri in self.queue.submitted]
        assert submitted == [(self.a, 'a'), (self.b, 'b')]
        assert self.root in self.queue.cancelled

    def test_view_limited_to_max_size(self):
        self.wms.max_width = 100
        self.root.update(self.view, self.queue)
        [(_layer, image, _uri)] = self.queue.submitted
        assert image.view == View((2.5, 0, 7.5, 5), (100, 100))

    def test_transparent_only_for_capable_formats(self):
        assert self.root.transparent
        assert self.root.map_image(self.view).transparent
        self.root.image_format = ImageFormat.JPEG
        image = self.root.map_image(self.view)
        assert not image.transparent
        assert 'transparent=FALSE' in image.image_address(self.wms)
        self.root.image_format = ImageFormat.GIF
        assert self.root.map_image(self.view).transparent

    def test_download_one_image_read_only(self):
        with pytest.raises(AttributeError):
            self.root.download_one_image = False
        assert self.root.download_one_image

    def test_same_image_resident(self):
        img = self.resident_image(self.root,
            MapImage('a,b', 0, self.view, ImageFormat.PNG, True, (255, 255, 255)))
        drawable = self.root.update(self.view, self.queue)
        assert self.queue.submitted == []
        assert self.root in self.queue.cancelled
        assert drawable == [(self.root, img)]
        assert img.data.closed == 0

    def test_outdated_image_stays_until_replaced(self):
        old_view = View((0, 0, 20, 10), (200, 100))
        img = self.resident_image(self.root,
            MapImage('a,b', 0, old_view, ImageFormat.PNG, True, (255, 255, 255)))
        drawable = self.root.update(self.view, self.queue)
        assert len(self.queue.submitted) == 1
        assert drawable == [(self.root, img)]
        assert self.root.image is img

    def test_no_visible_layers(self):
        self.a.visible = False
        self.b.visible = False
        img = self.resident_image(self.root,
            MapImage('a,b', 0, self.view, ImageFormat.PNG, True, (255, 255, 255)))
        drawable = self.root.update(self.view, self.queue)
        assert drawable == []
        assert self.queue.submitted == []
        assert self.root.image is None
        assert img.data is None

    def test_invisible_layer_drops_different_image(self):
        self.root.visible = False
        img = self.resident_image(self.root,
            MapImage('a', 0, self.view, ImageFormat.PNG, True, (255, 255, 255)))
        data = img.data
        drawable = self.root.update(self.view, self.queue)
        assert drawable == []
        assert self.queue.submitted == []
        assert self.root.image is None
        assert data.closed == 1

    def test_invisible_layer_keeps_same_image(self):
        self.root.visible = False
        img = self.resident_image(self.root,
            MapImage('a,b', 0, self.view, ImageFormat.PNG, True, (255, 255, 255)))
        drawable = self.root.update(self.view, self.queue)
        assert drawable == []
        assert self.root.image is img

    def test_downloading_disabled(self):
        self.wms.downloading_enabled = False
        img = self.resident_image(self.root,
            MapImage('a,b', 0, View((0, 0, 20, 10), (200, 100)), ImageFormat.PNG))
        drawable = self.root.update(self.view, self.queue)
        assert self.queue.submitted == []
        assert self.root in self.queue.cancelled
        assert drawable == [(self.root, img)]

    def test_downloading_disabled_drops_other_crs(self):
        self.wms.downloading_enabled = False
        img = self.resident_image(self.root,
            MapImage('a,b', 1, self.view, ImageFormat.PNG))
        data = img.data
        drawable = self.root.update(self.view, self.queue)
        assert drawable == []
        assert self.root.image is None
        assert data.closed == 1

    def test_auto_update_off(self):
        self.root.auto_update = False
        self.root.update(self.view, self.queue)
        assert self.queue.submitted == []
        assert self.root in self.queue.cancelled

    def test_crs_of_leaf_only(self):
        self.wms.crs_id = 1
        self.root.update(self.view, self.queue)
        [(_layer, image, uri)] = self.queue.submitted
        assert image.layers == 'b'
        assert image.crs_id == 1
        assert 'crs=EPSG:3857' in uri

    def test_concurrent_delivery_wins(self):
        img = self.resident_image(self.root,
            MapImage('a,b', 0, View((0, 0, 20, 10), (200, 100)), ImageFormat.PNG))
        delivered = MapImage('a,b', 0, self.view, ImageFormat.PNG)
        delivered.assign_data(ImageData())

        class DeliveringQueue(RecordingQueue):
            def submit(self, layer, image, uri):
                RecordingQueue.submit(self, layer, image, uri)
                layer.set_image(delivered)

        old_data = img.data
        drawable = self.root.update(self.view, DeliveringQueue())
        assert self.root.image is delivered
        assert old_data.closed == 1
        assert drawable == [(self.root, delivered)]
