"""Tests for the university catalog."""

from unittest.mock import MagicMock

import pytest
from faker import Faker

from models import University
from services.university_service import (
    BULK_BATCH_SIZE, PAGE_SIZE, UniversityNotFoundError, UniversityService,
)

fake = Faker()


@pytest.fixture
def extractor():
    extractor = MagicMock()
    extractor.enrich_university.side_effect = lambda row: {
        'name': row['name'], 'country': row.get('country', ''), 'dataSource': 'qs', 'qsRanking': 50,
    }
    return extractor


@pytest.fixture
def service(extractor):
    return UniversityService(extractor)


def add_many(service, count):
    service.bulk_upload([{'name': f'University {i:03d}', 'country': 'UK'} for i in range(count)])


class TestListUniversities:
    def test_pages_of_twenty(self, app, service):
        add_many(service, 45)
        first = service.list_universities(page=1)
        assert len(first['items']) == PAGE_SIZE
        assert first['totalPages'] == 3
        assert first['total'] == 45
        last = service.list_universities(page=3)
        assert [u.name for u in last['items']] == [f'University {i:03d}' for i in range(40, 45)]

    @pytest.mark.parametrize('requested,expected', [(0, 1), (-4, 1), (99, 3), ('abc', 1), (None, 1)])
    def test_page_is_clamped(self, app, service, requested, expected):
        add_many(service, 45)
        assert service.list_universities(page=requested)['page'] == expected

    def test_empty_catalog_has_one_page(self, app, service):
        listing = service.list_universities(page=5)
        assert listing['page'] == 1
        assert listing['totalPages'] == 1
        assert listing['items'] == []

    def test_search_and_active_filter(self, app, service):
        service.add_university({'name': 'University of Leeds', 'country': 'UK'})
        service.add_university({'name': 'McGill University', 'country': 'Canada', 'isActive': False})
        assert [u.name for u in service.list_universities(search='leeds')['items']] == ['University of Leeds']
        assert service.active_university_names() == ['University of Leeds']


class TestUniversityCrud:
    def test_add_requires_name(self, app, service):
        with pytest.raises(ValueError):
            service.add_university({'country': 'UK'})

    def test_add_defaults_active(self, app, service):
        university = service.add_university({'name': 'University of Leeds', 'city': 'Leeds'})
        assert university.is_active is True
        assert university.to_dict()['city'] == 'Leeds'

    def test_update(self, app, service):
        university = service.add_university({'name': 'Leeds', 'country': 'UK'})
        service.update_university(university.id, {'name': 'University of Leeds', 'qsRanking': 82,
                                                  'isActive': False})
        updated = service.get_university(university.id)
        assert updated.name == 'University of Leeds'
        assert updated.is_active is False
        assert updated.data['qsRanking'] == 82

    def test_delete(self, app, service):
        university = service.add_university({'name': 'University of Leeds'})
        service.delete_university(university.id)
        with pytest.raises(UniversityNotFoundError):
            service.get_university(university.id)


class TestBulkUpload:
    def test_batches(self, app, service):
        records = [{'name': f'{fake.city()} University {i}', 'country': fake.country()}
                   for i in range(BULK_BATCH_SIZE + 10)]
        result = service.bulk_upload(records)
        assert result['success'] == BULK_BATCH_SIZE + 10
        assert result['failed'] == 0
        assert University.query.count() == BULK_BATCH_SIZE + 10

    def test_rows_without_name_fail(self, app, service):
        result = service.bulk_upload([{'name': 'Leeds'}, {'country': 'UK'}])
        assert result['success'] == 1
        assert result['failed'] == 1
        assert result['errors'] == [{'row': 2, 'error': 'University name is required'}]


class TestImportCsv:
    CSV = 'Name,Country,Website\nUniversity of Leeds,UK,https://leeds.ac.uk\n,UK,\nMcGill University,Canada,\n'

    def test_rows_enriched(self, app, service, extractor):
        result = service.import_csv(self.CSV)
        assert result['success'] == 2
        assert extractor.enrich_university.call_count == 2
        leeds = University.query.filter_by(name='University of Leeds').one()
        assert leeds.data['dataSource'] == 'qs'

    def test_without_enrichment(self, app, service, extractor):
        records = service.parse_csv(self.CSV, enrich=False)
        extractor.enrich_university.assert_not_called()
        assert records[0] == {
            'name': 'University of Leeds', 'country': 'UK', 'city': '',
            'website': 'https://leeds.ac.uk', 'dataSource': 'manual', 'isActive': True,
        }

    def test_name_column_required(self, app, service):
        with pytest.raises(ValueError):
            service.parse_csv('Title,Country\nLeeds,UK\n')
