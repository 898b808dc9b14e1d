"""
Design linkage tests
"""
from gen_tasks.design_linkage import link_design
from gen_tasks.models import AssetUrls

from conftest import OWNER_ID, make_task_row

MIRRORED = AssetUrls(
    model_urls={"glb": "https://proj.supabase.co/storage/v1/object/public/design-files/u/t/model.glb"},
    thumbnail_url="https://proj.supabase.co/storage/v1/object/public/design-files/u/t/thumbnail.png",
)


class TestLinkDesign:
    """link_design upsert"""

    def test_creates_design_and_records_id(self, fake_db):
        """First link creates the design and stores design_id on the task"""
        task = make_task_row(fake_db, status="SUCCEEDED", prompt="a fox")

        design_id = link_design(task, MIRRORED, supabase=fake_db)

        designs = fake_db.rows("designs")
        assert len(designs) == 1
        assert designs[0]["id"] == design_id
        assert designs[0]["user_id"] == OWNER_ID
        assert designs[0]["generation_task_id"] == task["id"]
        assert designs[0]["chosen_glb_url"] == MIRRORED.model_urls["glb"]
        assert designs[0]["chosen_thumbnail_url"] == MIRRORED.thumbnail_url
        assert designs[0]["name"]
        assert fake_db.rows("generation_tasks")[0]["design_id"] == design_id

    def test_relink_updates_same_design(self, fake_db):
        """Repeated links never create a second design"""
        task = make_task_row(fake_db, status="SUCCEEDED")
        first = link_design(task, MIRRORED, name="Fox", supabase=fake_db)

        task = fake_db.rows("generation_tasks")[0]
        newer = AssetUrls(model_urls={"glb": "https://proj.supabase.co/storage/v1/object/public/design-files/u/t/v2.glb"})
        second = link_design(task, newer, supabase=fake_db)

        designs = fake_db.rows("designs")
        assert first == second
        assert len(designs) == 1
        assert designs[0]["chosen_glb_url"].endswith("v2.glb")
        assert designs[0]["name"] == "Fox"

    def test_upsert_keyed_by_task(self, fake_db):
        """on_conflict is generation_task_id"""
        task = make_task_row(fake_db, status="SUCCEEDED")
        link_design(task, MIRRORED, supabase=fake_db)
        upserts = fake_db.writes_to("designs", "upsert")
        assert len(upserts) == 1
        assert upserts[0][2]["generation_task_id"] == task["id"]
