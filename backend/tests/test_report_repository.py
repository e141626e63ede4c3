import os
import unittest
from unittest.mock import AsyncMock, patch

from app.core.exceptions import (
    BlobStoreError,
    NotFoundError,
    PermissionDeniedError,
    ReportValidationError,
    StoreWriteError,
)
from app.models.report import AssignedTo, DisasterType, ReportStatus
from app.models.user import UserRole
from app.services.media_service import ImageUpload

from support import ServicesMixin, jpeg, make_profile

DESCRIPTION = "Water rising fast near the school, two streets flooded"


class RepositoryTestCase(ServicesMixin, unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.admin = make_profile(UserRole.ADMIN, name="Asha Admin")
        self.volunteer = make_profile(UserRole.VOLUNTEER, name="Vik Volunteer")
        self.member = make_profile(UserRole.NDRF, name="Nina Responder")
        self.public = self.services.new_repository()

    async def submit(self, images=(), disaster_type="flood"):
        return await self.public.create(disaster_type, "Riverside Ward 4", DESCRIPTION, list(images))

    def repository_for(self, profile):
        return self.services.new_repository(profile)


class TestCreate(RepositoryTestCase):

    async def test_submission_round_trip(self):
        report_id = await self.submit([jpeg("first.jpg"), jpeg("second.jpg")])

        report = await self.public.get_by_id(report_id)
        self.assertEqual(report.status, ReportStatus.PENDING)
        self.assertEqual(report.assigned_to, AssignedTo.UNASSIGNED)
        self.assertIsNone(report.assigned_user_id)
        self.assertEqual(report.disaster_type, DisasterType.FLOOD)
        self.assertEqual(report.location, "Riverside Ward 4")
        self.assertEqual(report.description, DESCRIPTION)
        self.assertEqual(report.response_images, [])
        self.assertEqual(report.created_at, report.updated_at)

        self.assertEqual(len(report.image_urls), 2)
        self.assertTrue(report.image_urls[0].endswith("-first.jpg"))
        self.assertTrue(report.image_urls[1].endswith("-second.jpg"))
        prefix = "http://testserver/api/v1/files/"
        for url in report.image_urls:
            self.assertTrue(url.startswith(prefix + "disaster-images/"))
            self.assertTrue(os.path.isfile(os.path.join(self.upload_dir, url[len(prefix):])))

    async def test_created_report_is_patched_into_local_view(self):
        report_id = await self.submit()
        self.assertEqual([r.id for r in self.public.reports], [report_id])
        # No profile, so nothing is visible
        self.assertEqual(self.public.visible_reports, [])

    async def test_extended_disaster_types_are_accepted(self):
        report_id = await self.submit(disaster_type="chemical")
        report = await self.public.get_by_id(report_id)
        self.assertEqual(report.disaster_type, DisasterType.CHEMICAL)

    async def test_missing_fields_fail_before_any_upload(self):
        cases = [
            ("flood", "", DESCRIPTION, "location"),
            ("flood", "   ", DESCRIPTION, "location"),
            ("flood", "Riverside", "", "description"),
            ("flood", "Riverside", "too short", "description"),
            ("meteor", "Riverside", DESCRIPTION, "disaster_type"),
        ]
        with patch.object(self.services.blobs, "upload", new=AsyncMock()) as upload, \
                patch.object(self.services.store, "insert_report", new=AsyncMock()) as insert:
            for disaster_type, location, description, field in cases:
                with self.subTest(field=field, location=location, description=description):
                    with self.assertRaises(ReportValidationError) as ctx:
                        await self.public.create(disaster_type, location, description, [jpeg()])
                    self.assertEqual(ctx.exception.field, field)
            upload.assert_not_called()
            insert.assert_not_called()

    async def test_non_image_upload_is_rejected(self):
        document = ImageUpload("notes.pdf", b"%PDF-1.4", "application/pdf")
        with patch.object(self.services.blobs, "upload", new=AsyncMock()) as upload:
            with self.assertRaises(ReportValidationError):
                await self.public.create("fire", "Old Market", DESCRIPTION, [jpeg(), document])
            upload.assert_not_called()

    async def test_blob_failure_writes_no_report(self):
        failing = AsyncMock(side_effect=BlobStoreError())
        with patch.object(self.services.blobs, "upload", new=failing):
            with self.assertRaises(BlobStoreError):
                await self.submit([jpeg()])
        self.assertEqual(await self.services.store.list_reports(), [])
        self.assertEqual(self.public.reports, [])

    async def test_get_by_id_of_missing_report(self):
        self.assertIsNone(await self.public.get_by_id("no-such-report"))


class TestRoleViews(RepositoryTestCase):

    async def test_volunteer_never_sees_responder_reports(self):
        admin_repo = self.repository_for(self.admin)
        for _ in range(3):
            report_id = await self.submit()
            await admin_repo.assign(report_id, AssignedTo.NDRF)

        volunteer_repo = self.repository_for(self.volunteer)
        self.assertEqual(await volunteer_repo.list_for_role(), [])
        member_repo = self.repository_for(self.member)
        self.assertEqual(len(await member_repo.list_for_role()), 3)

    async def test_volunteer_sees_unit_wide_and_own_assignments(self):
        admin_repo = self.repository_for(self.admin)
        open_id = await self.submit()
        mine_id = await self.submit()
        theirs_id = await self.submit()
        await admin_repo.assign(open_id, AssignedTo.VOLUNTEER)
        await admin_repo.assign(mine_id, AssignedTo.VOLUNTEER, self.volunteer.id)
        await admin_repo.assign(theirs_id, AssignedTo.VOLUNTEER, "another-volunteer")

        volunteer_repo = self.repository_for(self.volunteer)
        visible = {r.id for r in await volunteer_repo.list_for_role()}
        self.assertEqual(visible, {open_id, mine_id})

        with self.assertRaises(NotFoundError) as ctx:
            await volunteer_repo.get_visible(theirs_id)
        self.assertEqual(ctx.exception.landing, "/volunteer")

    async def test_list_for_role_with_explicit_profile(self):
        admin_repo = self.repository_for(self.admin)
        report_id = await self.submit()
        await admin_repo.assign(report_id, AssignedTo.NDRF)

        self.assertEqual(await admin_repo.list_for_role(self.volunteer), [])
        self.assertEqual([r.id for r in await admin_repo.list_for_role(self.member)], [report_id])

    async def test_switch_profile_refetches(self):
        repo = self.repository_for(self.volunteer)
        await repo.list()
        report_id = await self.submit()
        await self.repository_for(self.admin).assign(report_id, AssignedTo.NDRF)

        # Cached list is stale until a re-fetch trigger
        self.assertEqual(await repo.list_for_role(), [])
        visible = await repo.switch_profile(self.member)
        self.assertEqual([r.id for r in visible], [report_id])
        self.assertEqual(repo.profile, self.member)


class TestLifecycle(RepositoryTestCase):

    async def test_assign_pending_to_responders(self):
        report_id = await self.submit()
        admin_repo = self.repository_for(self.admin)
        await admin_repo.list()

        report = await admin_repo.assign(report_id, AssignedTo.NDRF)
        self.assertEqual(report.assigned_to, AssignedTo.NDRF)
        self.assertEqual(report.status, ReportStatus.ASSIGNED)

        stored = await admin_repo.get_by_id(report_id)
        self.assertEqual(stored.status, ReportStatus.ASSIGNED)
        self.assertEqual(stored.assigned_to, AssignedTo.NDRF)
        # Local views are patched without a re-fetch
        self.assertEqual(admin_repo.reports[0].status, ReportStatus.ASSIGNED)

    async def test_responder_walks_report_to_resolved(self):
        report_id = await self.submit()
        await self.repository_for(self.admin).assign(report_id, AssignedTo.NDRF)
        member_repo = self.repository_for(self.member)
        await member_repo.list()

        seen = [(await member_repo.get_by_id(report_id)).updated_at]
        for status in (ReportStatus.DISPATCHED, ReportStatus.IN_PROGRESS, ReportStatus.RESOLVED):
            report = await member_repo.set_status(report_id, status)
            self.assertEqual(report.status, status)
            seen.append(report.updated_at)

        self.assertEqual(seen, sorted(seen))
        self.assertEqual(len(set(seen)), len(seen))
        final = await member_repo.get_by_id(report_id)
        self.assertEqual(final.status, ReportStatus.RESOLVED)
        self.assertGreaterEqual(final.updated_at, final.created_at)
        self.assertEqual(member_repo.visible_reports[0].status, ReportStatus.RESOLVED)

    async def test_advance_follows_the_assignee_workflow(self):
        report_id = await self.submit()
        await self.repository_for(self.admin).assign(report_id, AssignedTo.VOLUNTEER)
        volunteer_repo = self.repository_for(self.volunteer)

        self.assertEqual((await volunteer_repo.advance(report_id)).status, ReportStatus.IN_PROGRESS)
        self.assertEqual((await volunteer_repo.advance(report_id)).status, ReportStatus.RESOLVED)
        with self.assertRaises(ReportValidationError):
            await volunteer_repo.advance(report_id)

    async def test_set_status_twice_only_moves_updated_at(self):
        report_id = await self.submit()
        admin_repo = self.repository_for(self.admin)
        first = await admin_repo.set_status(report_id, ReportStatus.DISPATCHED)
        second = await admin_repo.set_status(report_id, ReportStatus.DISPATCHED)

        self.assertEqual(
            first.model_dump(exclude={"updated_at"}),
            second.model_dump(exclude={"updated_at"}),
        )
        self.assertGreater(second.updated_at, first.updated_at)

    async def test_admin_may_move_status_backwards(self):
        report_id = await self.submit()
        admin_repo = self.repository_for(self.admin)
        await admin_repo.set_status(report_id, ReportStatus.RESOLVED)
        report = await admin_repo.set_status(report_id, ReportStatus.PENDING)
        self.assertEqual(report.status, ReportStatus.PENDING)

    async def test_unassign_keeps_status(self):
        report_id = await self.submit()
        admin_repo = self.repository_for(self.admin)
        await admin_repo.assign(report_id, AssignedTo.VOLUNTEER, self.volunteer.id)
        report = await admin_repo.unassign(report_id)
        self.assertEqual(report.assigned_to, AssignedTo.UNASSIGNED)
        self.assertIsNone(report.assigned_user_id)
        self.assertEqual(report.status, ReportStatus.ASSIGNED)

    async def test_reassigning_does_not_reset_progress(self):
        report_id = await self.submit()
        admin_repo = self.repository_for(self.admin)
        await admin_repo.assign(report_id, AssignedTo.NDRF)
        await admin_repo.set_status(report_id, ReportStatus.IN_PROGRESS)
        report = await admin_repo.assign(report_id, AssignedTo.VOLUNTEER)
        self.assertEqual(report.status, ReportStatus.IN_PROGRESS)

    async def test_missing_report(self):
        admin_repo = self.repository_for(self.admin)
        with self.assertRaises(NotFoundError):
            await admin_repo.assign("no-such-report", AssignedTo.NDRF)
        with self.assertRaises(NotFoundError):
            await admin_repo.set_status("no-such-report", ReportStatus.RESOLVED)


class TestPermissions(RepositoryTestCase):

    async def test_non_admin_cannot_assign(self):
        report_id = await self.submit()
        for profile in (self.volunteer, self.member):
            with self.subTest(role=profile.role.value):
                with self.assertRaises(PermissionDeniedError):
                    await self.repository_for(profile).assign(report_id, AssignedTo.NDRF)
        with self.assertRaises(PermissionDeniedError):
            await self.public.unassign(report_id)

        stored = await self.public.get_by_id(report_id)
        self.assertEqual(stored.assigned_to, AssignedTo.UNASSIGNED)

    async def test_volunteer_cannot_move_responder_report(self):
        report_id = await self.submit()
        admin_repo = self.repository_for(self.admin)
        await admin_repo.assign(report_id, AssignedTo.NDRF)
        before = await admin_repo.get_by_id(report_id)

        with self.assertRaises(PermissionDeniedError) as ctx:
            await self.repository_for(self.volunteer).set_status(report_id, ReportStatus.RESOLVED)
        self.assertEqual(ctx.exception.landing, "/volunteer")
        self.assertEqual(await admin_repo.get_by_id(report_id), before)

    async def test_profile_less_repository_cannot_change_status(self):
        report_id = await self.submit()
        with self.assertRaises(PermissionDeniedError):
            await self.public.set_status(report_id, ReportStatus.RESOLVED)


class TestFailureSemantics(RepositoryTestCase):

    async def test_failed_write_leaves_local_state_unchanged(self):
        report_id = await self.submit()
        admin_repo = self.repository_for(self.admin)
        await admin_repo.list()
        before_reports = admin_repo.reports
        before_visible = admin_repo.visible_reports

        failing = AsyncMock(side_effect=StoreWriteError())
        with patch.object(self.services.store, "apply", new=failing):
            with self.assertRaises(StoreWriteError):
                await admin_repo.assign(report_id, AssignedTo.NDRF)
            with self.assertRaises(StoreWriteError):
                await admin_repo.set_status(report_id, ReportStatus.RESOLVED)

        self.assertEqual(admin_repo.reports, before_reports)
        self.assertEqual(admin_repo.visible_reports, before_visible)
        stored = await admin_repo.get_by_id(report_id)
        self.assertEqual(stored.status, ReportStatus.PENDING)

    async def test_close_drops_cached_state(self):
        await self.submit()
        admin_repo = self.repository_for(self.admin)
        await admin_repo.list()
        admin_repo.close()
        self.assertEqual(admin_repo.reports, [])
        self.assertIsNone(admin_repo.profile)
        self.assertFalse(admin_repo.loaded)



class TestFloodScenario(RepositoryTestCase):

    async def test_submit_triage_and_resolve(self):
        report_id = await self.public.create(
            "flood",
            "Riverside Ave",
            "Water rising near school, 30 people stranded",
            [jpeg("street.jpg"), jpeg("school.jpg")],
        )
        report = await self.public.get_by_id(report_id)
        self.assertEqual(report.disaster_type, DisasterType.FLOOD)
        self.assertEqual(report.status, ReportStatus.PENDING)
        self.assertEqual(report.assigned_to, AssignedTo.UNASSIGNED)
        self.assertEqual(len(report.image_urls), 2)

        admin_repo = self.repository_for(self.admin)
        report = await admin_repo.assign(report_id, AssignedTo.NDRF)
        self.assertEqual(report.status, ReportStatus.ASSIGNED)
        self.assertEqual(report.assigned_to, AssignedTo.NDRF)

        member_repo = self.repository_for(self.member)
        last = report.updated_at
        for status in (ReportStatus.DISPATCHED, ReportStatus.IN_PROGRESS, ReportStatus.RESOLVED):
            report = await member_repo.set_status(report_id, status)
            self.assertGreater(report.updated_at, last)
            last = report.updated_at
        self.assertEqual(report.status, ReportStatus.RESOLVED)

        volunteer_repo = self.repository_for(self.volunteer)
        leaked = [r for r in await volunteer_repo.list_for_role() if r.assigned_to == AssignedTo.NDRF]
        self.assertEqual(leaked, [])


if __name__ == "__main__":
    unittest.main()
