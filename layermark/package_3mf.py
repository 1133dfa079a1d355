"""
3MF project packaging.

A 3MF file is a zip (OPC package) holding:
    [Content_Types].xml     content types per file extension
    _rels/.rels             relationships to the model and the thumbnail
    3D/3dmodel.model        objects, per-object color swatches and build items
    Metadata/thumbnail.png  preview shown in slicer file pickers

Objects are written already positioned in z, so build items carry the identity
transform. One object per non-empty layer, in palette order.
"""
import datetime
import io
import logging
import zipfile
from xml.sax.saxutils import escape, quoteattr

import numpy as np

from .errors import EncodingError
from .utils import timed, rgb_to_hex

LOGGER = logging.getLogger(__name__)

CONTENT_TYPES_PATH = '[Content_Types].xml'
RELS_PATH = '_rels/.rels'
MODEL_PATH = '3D/3dmodel.model'
THUMBNAIL_PATH = 'Metadata/thumbnail.png'

CORE_NAMESPACE = 'http://schemas.microsoft.com/3dmanufacturing/core/2015/02'
MODEL_REL_TYPE = 'http://schemas.microsoft.com/3dmanufacturing/2013/01/3dmodel'
THUMBNAIL_REL_TYPE = 'http://schemas.openxmlformats.org/package/2006/relationships/metadata/thumbnail'

IDENTITY_TRANSFORM = '1 0 0 0 1 0 0 0 1 0 0 0'
COORDINATE_PRECISION = 3  # 0.001 mm
COORDINATE_FORMAT = f'%.{COORDINATE_PRECISION}f'
MATERIALS_ID = 1

CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">\n'
    ' <Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>\n'
    ' <Default Extension="model" ContentType="application/vnd.ms-package.3dmanufacturing-3dmodel+xml"/>\n'
    ' <Default Extension="png" ContentType="image/png"/>\n'
    '</Types>\n'
)

RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">\n'
    f' <Relationship Target="/{MODEL_PATH}" Id="rel0" Type="{MODEL_REL_TYPE}"/>\n'
    f' <Relationship Target="/{THUMBNAIL_PATH}" Id="rel1" Type="{THUMBNAIL_REL_TYPE}"/>\n'
    '</Relationships>\n'
)


def object_name(index, color):
    return f"Layer {index + 1} #{rgb_to_hex(color).upper()}"


def display_color(color):
    return f"#{rgb_to_hex(color).upper()}FF"


def _mesh_xml(mesh):
    """<mesh> element of one object; vertices are indexed, faces reference them."""
    buf = io.StringIO()
    buf.write('   <mesh>\n    <vertices>\n')
    fmt = f'     <vertex x="{COORDINATE_FORMAT}" y="{COORDINATE_FORMAT}" z="{COORDINATE_FORMAT}"/>'
    np.savetxt(buf, np.asarray(mesh.vertices, dtype=np.float64), fmt=fmt)
    buf.write('    </vertices>\n    <triangles>\n')
    np.savetxt(buf, np.asarray(mesh.faces, dtype=np.int64), fmt='     <triangle v1="%d" v2="%d" v3="%d"/>')
    buf.write('    </triangles>\n   </mesh>\n')
    return buf.getvalue()


def _metadata_xml(settings):
    heights = ', '.join(f'{h:g}' for h in settings.effective_layer_heights())
    description = (f"{settings.width_mm:g} x {settings.height_mm:g} mm board, "
                   f"base {settings.base_height:g} mm, layers {heights} mm")
    entries = [
        ('Title', 'layermark project'),
        ('Application', 'layermark'),
        ('CreationDate', datetime.date.today().isoformat()),
        ('Description', description),
    ]
    return ''.join(f' <metadata name="{name}">{escape(value)}</metadata>\n' for name, value in entries)


def model_xml(layers, palette, settings):
    """
    Renders 3D/3dmodel.model.

    Args:
        layers: LayerMesh sequence; empty meshes are skipped
        palette: the 4 palette colors, indexed by LayerMesh.index
        settings: Settings, recorded in the model metadata
    """
    present = [layer for layer in layers if len(layer.mesh.faces) > 0]

    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>\n',
        f'<model unit="millimeter" xml:lang="en-US" xmlns="{CORE_NAMESPACE}">\n',
        _metadata_xml(settings),
        ' <resources>\n',
        f'  <basematerials id="{MATERIALS_ID}">\n',
    ]
    for layer in present:
        color = palette[layer.index]
        parts.append(f'   <base name={quoteattr(object_name(layer.index, color))} '
                     f'displaycolor="{display_color(color)}"/>\n')
    parts.append('  </basematerials>\n')

    build = []
    for slot, layer in enumerate(present):
        object_id = MATERIALS_ID + 1 + slot
        color = palette[layer.index]
        parts.append(f'  <object id="{object_id}" name={quoteattr(object_name(layer.index, color))} '
                     f'type="model" pid="{MATERIALS_ID}" pindex="{slot}">\n')
        parts.append(_mesh_xml(layer.mesh))
        parts.append('  </object>\n')
        build.append(f'  <item objectid="{object_id}" transform="{IDENTITY_TRANSFORM}" printable="1"/>\n')

    parts.append(' </resources>\n <build>\n')
    parts.extend(build)
    parts.append(' </build>\n</model>\n')
    return ''.join(parts)


def write_3mf_package(archive, layers, palette, settings, thumbnail_png):
    """Writes all package parts through ``archive.writestr(name, data)``."""
    if not thumbnail_png:
        raise EncodingError("a PNG thumbnail is required", stage='3mf')
    archive.writestr(CONTENT_TYPES_PATH, CONTENT_TYPES_XML)
    archive.writestr(RELS_PATH, RELS_XML)
    archive.writestr(MODEL_PATH, model_xml(layers, palette, settings))
    archive.writestr(THUMBNAIL_PATH, thumbnail_png)


@timed
def build_3mf_package(layers, palette, settings, thumbnail_png):
    """Builds the complete .3mf file in memory and returns its bytes."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
        write_3mf_package(archive, layers, palette, settings, thumbnail_png)
    LOGGER.info("Packaged 3MF with %d objects (%d bytes)",
                sum(1 for layer in layers if len(layer.mesh.faces) > 0), buf.tell())
    return buf.getvalue()
