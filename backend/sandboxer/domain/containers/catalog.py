"""
Image Catalog - Fixed table of launchable VNC desktop images
"""

from typing import Dict, Iterable, List

from sandboxer.core.exceptions import InvalidImageID

from .entities import ImageDescriptor


_DEFAULT_IMAGES = (
    # Generic Ubuntu
    ImageDescriptor(
        id="ubuntu-base",
        reference="accetto/ubuntu-vnc-xfce-g3",
        description="Base Ubuntu with VNC and Xfce",
        category="Generic Ubuntu",
        tags=("ubuntu", "base", "xfce"),
    ),
    ImageDescriptor(
        id="ubuntu-chromium",
        reference="accetto/ubuntu-vnc-xfce-chromium-g3",
        description="Ubuntu with Chromium browser",
        category="Generic Ubuntu",
        tags=("ubuntu", "chromium", "browser"),
    ),
    ImageDescriptor(
        id="ubuntu-firefox",
        reference="accetto/ubuntu-vnc-xfce-firefox-g3",
        description="Ubuntu with Firefox browser",
        category="Generic Ubuntu",
        tags=("ubuntu", "firefox", "browser"),
    ),
    ImageDescriptor(
        id="ubuntu-opengl",
        reference="accetto/ubuntu-vnc-xfce-opengl-g3",
        description="Ubuntu with Mesa3D and VirtualGL support",
        category="Generic Ubuntu",
        tags=("ubuntu", "opengl", "graphics", "3d"),
    ),
    # Generic Debian
    ImageDescriptor(
        id="debian-base",
        reference="accetto/debian-vnc-xfce-g3",
        description="Base Debian with VNC and Xfce",
        category="Generic Debian",
        tags=("debian", "base", "xfce"),
    ),
    ImageDescriptor(
        id="debian-chromium",
        reference="accetto/debian-vnc-xfce-chromium-g3",
        description="Debian with Chromium browser",
        category="Generic Debian",
        tags=("debian", "chromium", "browser"),
    ),
    ImageDescriptor(
        id="debian-firefox",
        reference="accetto/debian-vnc-xfce-firefox-g3",
        description="Debian with Firefox browser",
        category="Generic Debian",
        tags=("debian", "firefox", "browser"),
    ),
    # Graphics and modeling
    ImageDescriptor(
        id="ubuntu-blender",
        reference="accetto/ubuntu-vnc-xfce-blender-g3",
        description="Ubuntu with Blender for 3D modeling",
        category="Graphics and Modeling",
        tags=("ubuntu", "blender", "3d", "modeling"),
    ),
    ImageDescriptor(
        id="ubuntu-drawio",
        reference="accetto/ubuntu-vnc-xfce-drawio-g3",
        description="Ubuntu with Draw.io for diagrams",
        category="Graphics and Modeling",
        tags=("ubuntu", "drawio", "diagrams"),
    ),
    ImageDescriptor(
        id="ubuntu-freecad",
        reference="accetto/ubuntu-vnc-xfce-freecad-g3",
        description="Ubuntu with FreeCAD for CAD modeling",
        category="Graphics and Modeling",
        tags=("ubuntu", "freecad", "cad", "modeling"),
    ),
    ImageDescriptor(
        id="ubuntu-gimp",
        reference="accetto/ubuntu-vnc-xfce-gimp-g3",
        description="Ubuntu with GIMP for image editing",
        category="Graphics and Modeling",
        tags=("ubuntu", "gimp", "image-editing"),
    ),
    ImageDescriptor(
        id="ubuntu-inkscape",
        reference="accetto/ubuntu-vnc-xfce-inkscape-g3",
        description="Ubuntu with Inkscape for vector graphics",
        category="Graphics and Modeling",
        tags=("ubuntu", "inkscape", "vector-graphics"),
    ),
    # Development
    ImageDescriptor(
        id="debian-nodejs",
        reference="accetto/debian-vnc-xfce-nodejs-g3",
        description="Debian with Node.js development environment",
        category="Development",
        tags=("debian", "nodejs", "development", "javascript"),
    ),
    ImageDescriptor(
        id="debian-nvm",
        reference="accetto/debian-vnc-xfce-nvm-g3",
        description="Debian with NVM for Node.js version management",
        category="Development",
        tags=("debian", "nvm", "nodejs", "development"),
    ),
    ImageDescriptor(
        id="debian-postman",
        reference="accetto/debian-vnc-xfce-postman-g3",
        description="Debian with Postman for API testing",
        category="Development",
        tags=("debian", "postman", "api-testing"),
    ),
    ImageDescriptor(
        id="debian-python",
        reference="accetto/debian-vnc-xfce-python-g3",
        description="Debian with Python development environment",
        category="Development",
        tags=("debian", "python", "development"),
    ),
    ImageDescriptor(
        id="debian-vscode",
        reference="accetto/debian-vnc-xfce-vscode-g3",
        description="Debian with Visual Studio Code",
        category="Development",
        tags=("debian", "vscode", "ide", "development"),
    ),
)


class ImageCatalog:
    """Read-only lookup table of images, kept in declaration order."""
    
    def __init__(self, images: Iterable[ImageDescriptor] = _DEFAULT_IMAGES):
        self._images: List[ImageDescriptor] = list(images)
        self._by_id: Dict[str, ImageDescriptor] = {img.id: img for img in self._images}
    
    def lookup(self, image_id: str) -> ImageDescriptor:
        try:
            return self._by_id[image_id]
        except KeyError:
            raise InvalidImageID(f"invalid image ID: {image_id}") from None
    
    def list(self) -> List[ImageDescriptor]:
        return list(self._images)
    
    def __len__(self) -> int:
        return len(self._images)
    
    def __contains__(self, image_id: object) -> bool:
        return image_id in self._by_id


def default_catalog() -> ImageCatalog:
    return ImageCatalog()
