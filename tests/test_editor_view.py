from __future__ import annotations

import json
import unittest

from editor_state import (
    ApplicationState,
    ChangeLayout,
    ColorTheme,
    LayoutMode,
    MenuAction,
    Note,
    OpenCloudFile,
    Preferences,
    decode_event,
)
from editor_view import (
    LAYOUT_CLASSES,
    THEME_CLASSES,
    MenuLeaf,
    MenuNode,
    build_menu,
    layout_class,
    project,
    theme_class,
)


def find(items, item_id):
    for item in items:
        if item.id == item_id:
            return item
        if isinstance(item, MenuNode):
            found = find(item.children, item_id)
            if found is not None:
                return found
    return None


class ClassMappingTest(unittest.TestCase):
    def test_every_theme_has_a_class(self) -> None:
        self.assertEqual(set(THEME_CLASSES), set(ColorTheme))
        self.assertEqual(len(set(THEME_CLASSES.values())), len(ColorTheme))
        self.assertEqual(theme_class(ColorTheme.DARK), "theme-dark")

    def test_every_layout_has_a_class(self) -> None:
        self.assertEqual(set(LAYOUT_CLASSES), set(LayoutMode))
        self.assertEqual(len(set(LAYOUT_CLASSES.values())), len(LayoutMode))
        self.assertEqual(layout_class(LayoutMode.READ), "layout-read")


class MenuTest(unittest.TestCase):
    def test_top_level_menus(self) -> None:
        menu = build_menu(ApplicationState())
        self.assertEqual([m.label for m in menu], ["File", "Cloud", "View"])

    def test_cloud_open_lists_known_files(self) -> None:
        state = ApplicationState(cloud_files=("a.md", "notes/b.md"))
        cloud_open = find(build_menu(state), "cloud-open")
        self.assertIsInstance(cloud_open, MenuNode)
        self.assertEqual([c.label for c in cloud_open.children], ["a.md", "notes/b.md"])
        self.assertEqual(cloud_open.children[1].action, OpenCloudFile("notes/b.md"))

    def test_cloud_open_empty_without_listing(self) -> None:
        cloud_open = find(build_menu(ApplicationState()), "cloud-open")
        self.assertEqual(cloud_open.children, ())

    def test_layout_menu_offers_every_mode(self) -> None:
        layout = find(build_menu(ApplicationState()), "view-layout")
        self.assertEqual([leaf.action for leaf in layout.children], [ChangeLayout(m) for m in LayoutMode])

    def test_leaf_actions_serialize_to_events(self) -> None:
        state = ApplicationState(cloud_files=("a.md",))
        leaf = find(build_menu(state), "cloud-open-0")
        self.assertIsInstance(leaf, MenuLeaf)
        wire = json.dumps(leaf.to_dict()["action"])
        self.assertEqual(decode_event(wire), MenuAction(OpenCloudFile("a.md")))


class ProjectTest(unittest.TestCase):
    def state(self, layout: LayoutMode, text: str = "# hi") -> ApplicationState:
        return ApplicationState(
            preferences=Preferences(ColorTheme.DARK, layout),
            note=Note("notes/plan.md", None, text),
        )

    def test_write_layout_shows_editor_and_preview(self) -> None:
        tree = project(self.state(LayoutMode.WRITE), render=lambda t: "<h1>hi</h1>")
        self.assertEqual(tree.editor_text, "# hi")
        self.assertEqual(tree.preview_html, "<h1>hi</h1>")
        self.assertIsNone(tree.toggle_label)
        self.assertEqual(tree.theme_class, "theme-dark")
        self.assertEqual(tree.layout_class, "layout-write")
        self.assertEqual(tree.title, "plan")

    def test_focus_layout_hides_preview(self) -> None:
        tree = project(self.state(LayoutMode.FOCUS))
        self.assertEqual(tree.editor_text, "# hi")
        self.assertIsNone(tree.preview_html)
        self.assertEqual(tree.toggle_label, "Read")

    def test_read_layout_hides_editor(self) -> None:
        tree = project(self.state(LayoutMode.READ))
        self.assertIsNone(tree.editor_text)
        self.assertEqual(tree.preview_html, "# hi")
        self.assertEqual(tree.toggle_label, "Edit")

    def test_to_dict_is_json_ready(self) -> None:
        data = project(self.state(LayoutMode.WRITE)).to_dict()
        decoded = json.loads(json.dumps(data))
        self.assertEqual(decoded["themeClass"], "theme-dark")
        self.assertEqual(decoded["menu"][0]["children"][0]["action"], {"type": "Menu", "action": "NewFile"})


if __name__ == "__main__":
    unittest.main()
