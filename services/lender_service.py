# services/lender_service.py

import logging
from datetime import datetime

from models import db, Lender

logger = logging.getLogger(__name__)

BULK_CHUNK_SIZE = 100

# Fields that are promoted onto the structured lender record during bulk upload
_CORE_FIELDS = (
    'name', 'description', 'logoUrl', 'website', 'contactEmail',
    'contactPhone', 'isActive', 'interestRate', 'maxLoanAmount',
    'minCreditScore', 'countries',
)


class LenderNotFoundError(Exception):
    pass


def _as_list(value):
    return [str(v) for v in value] if isinstance(value, list) else []


def _default_criteria(record):
    min_credit_score = record.get('minCreditScore')
    interest_rate = record.get('interestRate')
    max_loan_amount = record.get('maxLoanAmount')
    return {
        'minimumAcademicScore': '',
        'admissionRequirement': '',
        'eligibleCourses': [],
        'recognizedUniversities': [],
        'coApplicantRequired': False,
        'creditScoreRequirement': f"Minimum credit score of {min_credit_score}" if min_credit_score else 'Varies',
        'collateralRequired': False,
        'collateralDetails': {'threshold': '', 'acceptedTypes': []},
        'incomeProofRequired': [],
        'moratoriumPeriod': '',
        'processingTime': '',
        'interestRates': f"{interest_rate}%" if interest_rate else 'Varies',
        'prepaymentCharges': '',
        'loanLimits': {
            'withoutCollateral': f"Up to ${max_loan_amount:,}" if isinstance(max_loan_amount, (int, float))
            and max_loan_amount else 'Varies',
        },
        'easeOfApproval': '',
    }


def validate_lender(data):
    """Normalize a lender payload, or return None when it is missing the
    name, the countries or the criteria block."""
    if not isinstance(data, dict):
        return None
    criteria = data.get('criteria')
    countries = data.get('countries')
    if not data.get('name') or not isinstance(countries, list) or not countries or not isinstance(criteria, dict):
        return None

    collateral = criteria.get('collateralDetails') or {}
    limits = criteria.get('loanLimits') or {}
    return {
        'name': str(data['name']),
        'logoUrl': str(data['logoUrl']) if data.get('logoUrl') else None,
        'description': str(data['description']) if data.get('description') else None,
        'countries': [str(c) for c in countries],
        'criteria': {
            'minimumAcademicScore': str(criteria.get('minimumAcademicScore') or ''),
            'admissionRequirement': str(criteria.get('admissionRequirement') or ''),
            'eligibleCourses': _as_list(criteria.get('eligibleCourses')),
            'recognizedUniversities': _as_list(criteria.get('recognizedUniversities')),
            'coApplicantRequired': bool(criteria.get('coApplicantRequired')),
            'creditScoreRequirement': str(criteria.get('creditScoreRequirement') or ''),
            'collateralRequired': bool(criteria.get('collateralRequired')),
            'collateralDetails': {
                'threshold': str(collateral['threshold']) if collateral.get('threshold') else None,
                'acceptedTypes': _as_list(collateral.get('acceptedTypes')),
            },
            'incomeProofRequired': _as_list(criteria.get('incomeProofRequired')),
            'moratoriumPeriod': str(criteria.get('moratoriumPeriod') or ''),
            'processingTime': str(criteria.get('processingTime') or ''),
            'interestRates': str(criteria.get('interestRates') or ''),
            'prepaymentCharges': str(criteria.get('prepaymentCharges') or ''),
            'loanLimits': {
                'withoutCollateral': str(limits['withoutCollateral']) if limits.get('withoutCollateral') else None,
                'withCollateral': str(limits['withCollateral']) if limits.get('withCollateral') else None,
            },
            'easeOfApproval': str(criteria.get('easeOfApproval') or ''),
        },
        'website': str(data['website']) if data.get('website') else None,
        'contactEmail': str(data['contactEmail']) if data.get('contactEmail') else None,
        'contactPhone': str(data['contactPhone']) if data.get('contactPhone') else None,
        'isActive': bool(data['isActive']) if data.get('isActive') is not None else True,
    }


class LenderService:
    def list_lenders(self, active_only=False):
        query = Lender.query
        if active_only:
            query = query.filter_by(is_active=True)
        return query.order_by(Lender.name).all()

    def get_lender(self, lender_id):
        lender = db.session.get(Lender, lender_id)
        if lender is None:
            raise LenderNotFoundError(lender_id)
        return lender

    def add_lender(self, data):
        payload = {k: v for k, v in data.items() if k not in ('id', 'name', 'isActive', 'createdAt', 'updatedAt')}
        lender = Lender(
            name=data['name'],
            is_active=data.get('isActive') is not False,
            data=payload,
        )
        db.session.add(lender)
        db.session.commit()
        logger.info(f"Added lender {lender.name}")
        return lender

    def update_lender(self, lender_id, updates):
        lender = self.get_lender(lender_id)
        payload = dict(lender.data or {})
        for key, value in updates.items():
            if key in ('id', 'createdAt', 'updatedAt'):
                continue
            if key == 'name':
                lender.name = value
            elif key == 'isActive':
                lender.is_active = bool(value)
            else:
                payload[key] = value
        lender.data = payload
        lender.updated_at = datetime.utcnow()
        db.session.commit()
        return lender

    def delete_lender(self, lender_id):
        lender = self.get_lender(lender_id)
        db.session.delete(lender)
        db.session.commit()

    def bulk_upload(self, records):
        """Insert lender records in chunks, collecting per-row failures.

        Rows are numbered from 1 in the returned errors.
        """
        result = {'success': 0, 'failed': 0, 'errors': []}

        for start in range(0, len(records), BULK_CHUNK_SIZE):
            chunk = records[start:start + BULK_CHUNK_SIZE]
            added = 0
            for offset, record in enumerate(chunk):
                row_number = start + offset + 1
                try:
                    if not isinstance(record, dict):
                        raise ValueError('Invalid row format')
                    extras = {k: v for k, v in record.items() if k not in _CORE_FIELDS}
                    criteria = extras.pop('criteria', None) or _default_criteria(record)
                    payload = {
                        'description': record.get('description') or '',
                        'logoUrl': record.get('logoUrl') or '',
                        'website': record.get('website') or '',
                        'contactEmail': record.get('contactEmail') or '',
                        'contactPhone': record.get('contactPhone') or '',
                        'interestRate': record.get('interestRate'),
                        'maxLoanAmount': record.get('maxLoanAmount'),
                        'minCreditScore': record.get('minCreditScore'),
                        'countries': record.get('countries') if isinstance(record.get('countries'), (list, str)) else [],
                        'criteria': criteria,
                        **extras,
                    }
                    lender = Lender(
                        name=record.get('name') or f"Lender {row_number}",
                        is_active=record.get('isActive') is not False,
                        data=payload,
                    )
                    db.session.add(lender)
                    added += 1
                except (ValueError, TypeError) as e:
                    result['failed'] += 1
                    result['errors'].append({'row': row_number, 'error': str(e)})

            try:
                db.session.commit()
                result['success'] += added
            except Exception as e:
                db.session.rollback()
                logger.error(f"Error committing lender chunk starting at row {start + 1}: {e}")
                result['failed'] += added
                result['errors'].append({'row': start + 1, 'error': 'Batch upload failed'})

        logger.info(f"Lender bulk upload: {result['success']} added, {result['failed']} failed")
        return result
