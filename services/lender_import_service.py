# services/lender_import_service.py - parse lender bulk-upload files

import io
import re
import json
import logging
import zipfile
from typing import Dict, Any, List

import docx
import pandas as pd
from docx.opc.exceptions import PackageNotFoundError

import config
from .ai_extraction_engine import AIExtractionError, DocumentInput

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    '.csv': 'csv',
    '.json': 'json',
    '.txt': 'text',
    '.pdf': 'pdf',
    '.doc': 'legacy-word',
    '.docx': 'word',
}


class LenderImportError(Exception):
    pass


class LenderImportService:
    def __init__(self, extractor):
        self.extractor = extractor
        self.field_mappings = {
            'fundedUniversities': ['funded universities', 'list of funded universities', 'universities funded', 'funded_universities'],
            'fundedCourses': ['funded courses', 'list of funded courses', 'courses funded', 'funded_courses'],
            'loanType': ['loan type', 'type of loan'],
            'coSignerStatus': ['co-signer status', 'co-signer', 'cosigner'],
            'rateOfInterest': ['rate of interest', 'roi'],
            'loanCurrency': ['loan currency', 'currency'],
            'tuitionFeesCovered': ['tuition fees covered', 'tuition fees', 'fees covered'],
            'selfContributionFunding': ['self contribution / deposit funding', 'self contribution funding', 'deposit funding'],
            'livingExpensesCovered': ['living expenses covered', 'living expenses'],
            'tatForSanctionLetter': ['tat for sanction letter', 'sanction tat', 'sanction letter tat'],
            'name': ['lender name', 'name'],
            'logoUrl': ['logo', 'logo url', 'logo_url', 'logoimage', 'image'],
            'lenderType': ['lender type', 'type'],
            'baseCountry': ['base country', 'country'],
            'targetNationalities': ['target nationalities', 'target nationality', 'countries', 'nationalities'],
            'countries': ['target nationalities', 'target nationality', 'countries', 'nationalities'],
            'bankType': ['type of bank', 'bank type'],
            'maxLoanAmountIndia': ['max loan (india)', 'max loan india'],
            'maxLoanAmountAbroad': ['max loan (abroad)', 'max loan abroad'],
            'loanBrandName': ['loan brand name', 'brand name', 'brand'],
            'description': ['description', 'desc'],
            'website': ['website', 'site', 'web'],
            'contactEmail': ['contact email', 'email'],
            'contactPhone': ['contact phone', 'phone', 'mobile'],
            'isActive': ['isactive', 'active', 'enabled'],
            'interestRate': ['interest rates', 'interest rate', 'rates'],
            'minCreditScore': ['credit score of co-applicant', 'min credit score', 'creditscore'],
            # Criteria fields
            'minimumAcademicScore': ['minimum academic score', 'min academic score'],
            'admissionRequirement': ['admission requirement'],
            'eligibleCourses': ['eligible courses', 'courses'],
            'recognizedUniversities': ['recognized universities', 'universities'],
            'coApplicantRequired': ['co-applicant required', 'co-applicant', 'coapplicant'],
            'creditScoreRequirement': ['credit score of co-applicant', 'credit score requirement', 'credit score'],
            'collateralRequired': ['collateral requirement', 'collateral required', 'collateral'],
            'acceptedCollateralTypes': ['accepted collateral types', 'collateral types'],
            'incomeProofRequired': ['income proof of co-applicant', 'income proof required', 'income proof'],
            'moratoriumPeriod': ['moratorium period', 'moratorium'],
            'processingTime': ['loan processing time', 'processing time'],
            'interestRates': ['interest rates', 'interest rate'],
            'prepaymentCharges': ['prepayment charges', 'prepayment'],
            'loanLimitNoCollateral': ['loan limit (no collateral)', 'loan limit no collateral'],
            'loanLimitWithCollateral': ['loan limit (with collateral)', 'loan limit with collateral'],
            'easeOfApproval': ['ease of approval'],
        }

    # --- Entry point ---

    def parse_upload(self, filename, content: bytes) -> Dict[str, Any]:
        """Parse an uploaded lender file into lender records.

        Returns ``{'data': [...], 'newColumns': [...], 'errors': [...]}``.
        Raises ``LenderImportError`` for files that are too large or of an
        unsupported type.
        """
        kind = self.detect_kind(filename)
        if len(content) > config.MAX_UPLOAD_SIZE:
            raise LenderImportError('File size exceeds 10MB limit')

        if kind == 'csv':
            return self.parse_csv(content.decode('utf-8-sig', errors='replace'))
        if kind == 'json':
            return self.parse_json(content.decode('utf-8', errors='replace'))

        if kind == 'text':
            document = DocumentInput(text=content.decode('utf-8', errors='replace'))
            label = 'plain text'
        elif kind == 'pdf':
            document = DocumentInput(data=content, mime_type='application/pdf')
            label = 'PDF'
        elif kind == 'word':
            document = DocumentInput(text=self.docx_text(content))
            label = 'Word document'
        else:
            raise LenderImportError('Legacy .doc files are not supported. Please save the file as .docx and upload again.')

        try:
            lenders, new_columns = self.extractor.extract_lenders(document, label)
        except AIExtractionError as e:
            logger.error(f"AI lender extraction failed for {filename}: {e}")
            return {'data': [], 'newColumns': [], 'errors': [{'row': 0, 'error': 'Failed to extract data with AI'}]}
        return {'data': lenders, 'newColumns': new_columns, 'errors': []}

    @staticmethod
    def detect_kind(filename):
        extension = ''
        if filename and '.' in filename:
            extension = '.' + filename.rsplit('.', 1)[1].lower()
        kind = ALLOWED_EXTENSIONS.get(extension)
        if kind is None:
            raise LenderImportError('Invalid file type. Only CSV, JSON, TXT, PDF, and DOCX files are allowed.')
        return kind

    @staticmethod
    def docx_text(content: bytes) -> str:
        """Paragraph and table text of a .docx file, one line per paragraph or table row"""
        try:
            document = docx.Document(io.BytesIO(content))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            logger.error(f"Could not open Word document: {e}")
            raise LenderImportError('Could not read the Word document. Please check the file and try again.')

        lines = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                lines.append(' | '.join(cell.text.strip() for cell in row.cells))
        return '\n'.join(lines)

    # --- CSV ---

    @staticmethod
    def _normalize(header):
        return re.sub(r'[\s_]', '', str(header).lower())

    def build_header_map(self, headers):
        """Map canonical field names to the CSV's own header text"""
        header_map = {}
        for header in headers:
            norm = self._normalize(header)
            for field_name, variations in self.field_mappings.items():
                if norm == self._normalize(field_name) or any(norm == self._normalize(v) for v in variations):
                    header_map[field_name] = header
        return header_map

    def parse_csv(self, content: str) -> Dict[str, Any]:
        result = {'data': [], 'newColumns': [], 'errors': []}
        try:
            frame = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False, skip_blank_lines=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.error(f"Error parsing lender CSV: {e}")
            result['errors'].append({'row': 0, 'error': str(e) or 'Failed to parse CSV'})
            return result

        headers = list(frame.columns)
        header_map = self.build_header_map(headers)
        mapped_headers = set(header_map.values())
        result['newColumns'] = [h for h in headers if h not in mapped_headers]

        for index, row in enumerate(frame.to_dict(orient='records')):
            try:
                result['data'].append(self._row_to_lender(row, header_map, index))
            except (ValueError, TypeError, AttributeError):
                result['errors'].append({'row': index + 1, 'error': 'Invalid row format'})

        logger.info(f"Parsed {len(result['data'])} lenders from CSV ({len(result['errors'])} errors)")
        return result

    def _row_to_lender(self, row, header_map, index):
        def value(key):
            header = header_map.get(key, key)
            return (row.get(header) or '').strip()

        return {
            'name': value('name') or f"Lender {index + 1}",
            'logoUrl': value('logoUrl'),
            'fundedUniversities': self.parse_all_or_list(value('fundedUniversities')),
            'fundedCourses': self.parse_all_or_list(value('fundedCourses')),
            'loanType': value('loanType'),
            'coSignerStatus': value('coSignerStatus'),
            'rateOfInterest': value('rateOfInterest'),
            'loanCurrency': value('loanCurrency'),
            'tuitionFeesCovered': value('tuitionFeesCovered'),
            'selfContributionFunding': value('selfContributionFunding'),
            'livingExpensesCovered': value('livingExpensesCovered'),
            'tatForSanctionLetter': value('tatForSanctionLetter'),
            'lenderType': value('lenderType'),
            'baseCountry': value('baseCountry'),
            'targetNationalities': self.parse_list(value('targetNationalities')),
            'countries': self.parse_all_or_list(value('countries')),
            'bankType': value('bankType'),
            'maxLoanAmountIndia': value('maxLoanAmountIndia'),
            'maxLoanAmountAbroad': value('maxLoanAmountAbroad'),
            'loanBrandName': value('loanBrandName'),
            'description': value('description'),
            'website': value('website'),
            'contactEmail': value('contactEmail'),
            'contactPhone': value('contactPhone'),
            'isActive': value('isActive').lower() != 'false',
            'interestRate': self._extract_number(value('interestRate')),
            'minCreditScore': int(self._extract_number(value('minCreditScore'))),
            'criteria': {
                'minimumAcademicScore': value('minimumAcademicScore'),
                'admissionRequirement': value('admissionRequirement'),
                'eligibleCourses': self.parse_list(value('eligibleCourses')),
                'recognizedUniversities': self.parse_list(value('recognizedUniversities')),
                'coApplicantRequired': self.parse_bool(value('coApplicantRequired')),
                'creditScoreRequirement': value('creditScoreRequirement'),
                'collateralRequired': self.parse_bool(value('collateralRequired')),
                'collateralDetails': {
                    'acceptedTypes': self.parse_list(value('acceptedCollateralTypes')),
                },
                'incomeProofRequired': self.parse_list(value('incomeProofRequired')),
                'moratoriumPeriod': value('moratoriumPeriod'),
                'processingTime': value('processingTime'),
                'interestRates': value('interestRates'),
                'prepaymentCharges': value('prepaymentCharges'),
                'loanLimits': {
                    'withoutCollateral': value('loanLimitNoCollateral'),
                    'withCollateral': value('loanLimitWithCollateral'),
                },
                'easeOfApproval': value('easeOfApproval'),
            },
        }

    # --- JSON ---

    def parse_json(self, content: str) -> Dict[str, Any]:
        result = {'data': [], 'newColumns': [], 'errors': []}
        try:
            items = json.loads(content)
        except json.JSONDecodeError as e:
            result['errors'].append({'row': 0, 'error': f"Invalid JSON format: {e.msg}"})
            return result
        if not isinstance(items, list):
            result['errors'].append({'row': 0, 'error': 'JSON file should contain an array of lenders'})
            return result

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                result['errors'].append({'row': index + 1, 'error': 'Invalid row format'})
                continue
            result['data'].append({
                'name': item.get('name') or 'Unnamed Lender',
                'description': item.get('description') or '',
                'logoUrl': item.get('logoUrl') or '',
                'website': item.get('website') or '',
                'contactEmail': item.get('contactEmail') or '',
                'contactPhone': item.get('contactPhone') or '',
                'isActive': item.get('isActive') is not False,
                'interestRate': self._to_number(item.get('interestRate')),
                'maxLoanAmount': self._to_number(item.get('maxLoanAmount')),
                'minCreditScore': self._to_number(item.get('minCreditScore')),
                'countries': item.get('countries') if isinstance(item.get('countries'), list) else [],
            })
        return result

    # --- Value helpers ---

    @staticmethod
    def parse_list(text: str) -> List[str]:
        return [part.strip() for part in text.split(',') if part.strip()] if text else []

    @staticmethod
    def parse_all_or_list(text: str):
        """``ALL`` stays a literal; otherwise split on comma, semicolon or
        newline and drop leading numbering such as ``1.``"""
        if not text:
            return []
        if text.strip().upper() == 'ALL':
            return 'ALL'
        items = [part.strip() for part in re.split(r'[,;\n]', text) if part.strip()]
        return [re.sub(r'^\d+\.?\s*', '', item).strip() for item in items]

    @staticmethod
    def parse_bool(text: str) -> bool:
        return text.lower() in ('yes', 'true') if text else False

    @staticmethod
    def _extract_number(text: str) -> float:
        """Extract numeric value from text"""
        match = re.search(r'\d+(?:\.\d+)?', text.replace(',', '')) if text else None
        return float(match.group()) if match else 0.0

    @staticmethod
    def _to_number(value):
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0
