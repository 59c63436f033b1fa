"""State -> render tree projection for the editor page."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

from editor_state import (
    ApplicationState,
    ChangeLayout,
    ChangeTheme,
    ColorTheme,
    LayoutMode,
    ListCloudFiles,
    NewFile,
    OpenCloudFile,
    OpenFile,
    SaveCloudFile,
    SaveFile,
    encode_action,
    note_title,
)

THEME_CLASSES = {
    ColorTheme.WHITE: "theme-white",
    ColorTheme.DARK: "theme-dark",
}

LAYOUT_CLASSES = {
    LayoutMode.WRITE: "layout-write",
    LayoutMode.FOCUS: "layout-focus",
    LayoutMode.READ: "layout-read",
}


@dataclass(frozen=True)
class MenuLeaf:
    id: str
    label: str
    action: object

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "action": encode_action(self.action)}


@dataclass(frozen=True)
class MenuNode:
    id: str
    label: str
    children: tuple["MenuItem", ...]

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label,
                "children": [child.to_dict() for child in self.children]}


MenuItem = Union[MenuLeaf, MenuNode]


@dataclass(frozen=True)
class RenderTree:
    title: str
    theme_class: str
    layout_class: str
    menu: tuple[MenuItem, ...]
    editor_text: str | None
    preview_html: str | None
    toggle_label: str | None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "themeClass": self.theme_class,
            "layoutClass": self.layout_class,
            "menu": [item.to_dict() for item in self.menu],
            "editor": self.editor_text,
            "preview": self.preview_html,
            "toggle": self.toggle_label,
        }


def theme_class(theme: ColorTheme) -> str:
    return THEME_CLASSES[theme]


def layout_class(mode: LayoutMode) -> str:
    return LAYOUT_CLASSES[mode]


def cloud_open_menu(files) -> MenuNode:
    children = tuple(
        MenuLeaf(f"cloud-open-{i}", name, OpenCloudFile(name))
        for i, name in enumerate(files)
    )
    return MenuNode("cloud-open", "Open", children)


def build_menu(state: ApplicationState) -> tuple[MenuItem, ...]:
    file_menu = MenuNode("file", "File", (
        MenuLeaf("file-new", "New", NewFile()),
        MenuLeaf("file-open", "Open", OpenFile()),
        MenuLeaf("file-save", "Save", SaveFile()),
    ))
    cloud_menu = MenuNode("cloud", "Cloud", (
        MenuLeaf("cloud-list", "Refresh", ListCloudFiles()),
        cloud_open_menu(state.cloud_files),
        MenuLeaf("cloud-save", "Save", SaveCloudFile()),
    ))
    view_menu = MenuNode("view", "View", (
        MenuNode("view-theme", "Theme", tuple(
            MenuLeaf(f"view-theme-{t.value.lower()}", t.value, ChangeTheme(t))
            for t in ColorTheme
        )),
        MenuNode("view-layout", "Layout", tuple(
            MenuLeaf(f"view-layout-{m.value.lower()}", m.value, ChangeLayout(m))
            for m in LayoutMode
        )),
    ))
    return (file_menu, cloud_menu, view_menu)


def project(state: ApplicationState, render: Callable[[str], str] | None = None) -> RenderTree:
    """Build the render tree for ``state``.

    ``render`` turns markdown into HTML for the preview pane; without one the
    preview carries the raw text.
    """
    mode = state.preferences.layout_mode
    text = state.note.text

    editor_text = None if mode is LayoutMode.READ else text
    preview_html = None
    if mode is not LayoutMode.FOCUS:
        preview_html = render(text) if render is not None else text

    toggle_label = None
    if mode is LayoutMode.FOCUS:
        toggle_label = "Read"
    elif mode is LayoutMode.READ:
        toggle_label = "Edit"

    return RenderTree(
        title=note_title(state.note.name),
        theme_class=theme_class(state.preferences.color_theme),
        layout_class=layout_class(mode),
        menu=build_menu(state),
        editor_text=editor_text,
        preview_html=preview_html,
        toggle_label=toggle_label,
    )
