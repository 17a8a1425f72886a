# services/university_service.py

import io
import math
import logging
from datetime import datetime

import pandas as pd

from models import db, University

logger = logging.getLogger(__name__)

PAGE_SIZE = 20
BULK_BATCH_SIZE = 500


class UniversityNotFoundError(Exception):
    pass


class UniversityService:
    def __init__(self, extractor=None):
        self.extractor = extractor

    def list_universities(self, page=1, page_size=PAGE_SIZE, search=None, active_only=False):
        """Return one page of universities plus paging info.

        Out-of-range page numbers are clamped into ``1..total_pages``.
        """
        query = University.query
        if active_only:
            query = query.filter_by(is_active=True)
        if search:
            query = query.filter(University.name.ilike(f"%{search}%"))

        total = query.count()
        total_pages = max(1, math.ceil(total / page_size))
        try:
            page = int(page)
        except (TypeError, ValueError):
            page = 1
        page = min(max(page, 1), total_pages)

        items = (query.order_by(University.name)
                 .offset((page - 1) * page_size)
                 .limit(page_size)
                 .all())
        return {
            'items': items,
            'page': page,
            'totalPages': total_pages,
            'total': total,
        }

    def active_university_names(self):
        return [u.name for u in University.query.filter_by(is_active=True).order_by(University.name).all()]

    def get_university(self, university_id):
        university = db.session.get(University, university_id)
        if university is None:
            raise UniversityNotFoundError(university_id)
        return university

    def add_university(self, data):
        if not data.get('name'):
            raise ValueError('University name is required')
        university = University(
            name=data['name'],
            country=data.get('country') or '',
            is_active=data.get('isActive') is not False,
            data={k: v for k, v in data.items() if k not in ('id', 'name', 'country', 'isActive')},
        )
        db.session.add(university)
        db.session.commit()
        logger.info(f"Added university {university.name}")
        return university

    def update_university(self, university_id, updates):
        university = self.get_university(university_id)
        payload = dict(university.data or {})
        for key, value in updates.items():
            if key == 'name':
                university.name = value
            elif key == 'country':
                university.country = value
            elif key == 'isActive':
                university.is_active = bool(value)
            elif key not in ('id', 'createdAt', 'updatedAt'):
                payload[key] = value
        university.data = payload
        university.updated_at = datetime.utcnow()
        db.session.commit()
        return university

    def delete_university(self, university_id):
        university = self.get_university(university_id)
        db.session.delete(university)
        db.session.commit()

    def bulk_upload(self, records):
        """Insert universities in batches of ``BULK_BATCH_SIZE``.

        A failed batch is rolled back and every row in it is reported.
        """
        result = {'success': 0, 'failed': 0, 'errors': []}

        for start in range(0, len(records), BULK_BATCH_SIZE):
            batch = records[start:start + BULK_BATCH_SIZE]
            added = 0
            for offset, record in enumerate(batch):
                row_number = start + offset + 1
                if not isinstance(record, dict) or not record.get('name'):
                    result['failed'] += 1
                    result['errors'].append({'row': row_number, 'error': 'University name is required'})
                    continue
                db.session.add(University(
                    name=record['name'],
                    country=record.get('country') or '',
                    is_active=record.get('isActive') is not False,
                    data={k: v for k, v in record.items() if k not in ('name', 'country', 'isActive')},
                ))
                added += 1

            try:
                db.session.commit()
                result['success'] += added
            except Exception as e:
                db.session.rollback()
                logger.error(f"Error committing university batch starting at row {start + 1}: {e}")
                result['failed'] += added
                for offset in range(len(batch)):
                    result['errors'].append({'row': start + offset + 1, 'error': str(e)})

        logger.info(f"University bulk upload: {result['success']} added, {result['failed']} failed")
        return result

    def parse_csv(self, content: str, enrich=True):
        """Turn a university CSV into records, enriching each row with AI data when possible"""
        frame = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False)
        frame.columns = [str(c).strip().lower() for c in frame.columns]
        if 'name' not in frame.columns:
            raise ValueError("CSV must have a 'name' column")

        records = []
        for row in frame.to_dict(orient='records'):
            row = {k: v.strip() for k, v in row.items()}
            if not row.get('name'):
                continue
            if enrich and self.extractor is not None:
                records.append(self.extractor.enrich_university(row))
            else:
                records.append({
                    'name': row['name'],
                    'country': row.get('country', ''),
                    'city': row.get('city', ''),
                    'website': row.get('website', ''),
                    'dataSource': 'manual',
                    'isActive': True,
                })
        return records

    def import_csv(self, content: str, enrich=True):
        records = self.parse_csv(content, enrich=enrich)
        return self.bulk_upload(records)
