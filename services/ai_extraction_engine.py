# services/ai_extraction_engine.py
import re
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import google.generativeai as genai

import config

logger = logging.getLogger(__name__)

NOT_SPECIFIED = 'Not Specified'

OFFER_LETTER_FIELDS = (
    'studentName', 'universityName', 'courseName', 'admissionLevel',
    'admissionFees', 'courseStartDate', 'offerLetterType',
)
PERSONAL_KYC_FIELDS = (
    'idNumber', 'idType', 'passportNumber', 'mothersName', 'fathersName',
    'passportExpiryDate', 'passportIssueDate', 'nameOnPassport', 'countryOfUser',
    'dateOfBirth', 'permanentAddress',
)
CO_SIGNATORY_FIELDS = ('idNumber', 'idType', 'nameOnId')
PROFESSIONAL_PROFILE_FIELDS = (
    'yearsOfExperience', 'gapInLast3YearsMonths', 'currentOrLastIndustry', 'currentOrLastJobRole',
)
ID_DOCUMENT_TYPES = ('PAN Card', 'National ID')
PROFILE_SOURCE_TYPES = ('resumeImage', 'linkedinUrl', 'resumeText')


class AIExtractionError(Exception):
    """The model was unavailable or its reply could not be used."""


@dataclass
class DocumentInput:
    """An uploaded document: plain text when the user sent a .txt file,
    raw bytes plus MIME type for images, PDFs and Word files."""
    text: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None

    @property
    def is_empty(self):
        return not self.text and not self.data

    @classmethod
    def from_upload(cls, file_storage):
        if file_storage is None or not file_storage.filename:
            return cls()
        raw = file_storage.read()
        if file_storage.filename.lower().endswith('.txt'):
            return cls(text=raw.decode('utf-8', errors='replace'))
        return cls(data=raw, mime_type=file_storage.mimetype or 'application/octet-stream')


def extract_json(text):
    """Pull a JSON value out of a model reply, tolerating markdown fences."""
    if not text:
        raise AIExtractionError('Empty response from model')
    match = re.search(r'```(?:json)?\s*\n(.*?)\n\s*```', text, re.DOTALL)
    candidate = match.group(1) if match else text.strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    match = re.search(r'(\[\s*\{.*\}\s*\]|\{.*\})', text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass
    raise AIExtractionError('Could not parse AI response')


def with_defaults(data, fields):
    data = data if isinstance(data, dict) else {}
    result = {}
    for name in fields:
        value = data.get(name)
        result[name] = value if value not in (None, '') else NOT_SPECIFIED
    return result


class GeminiExtractor:
    def __init__(self, api_key=None, model_name=None, model=None):
        self.model_name = model_name or config.GEMINI_MODEL
        self.model = model
        api_key = api_key if api_key is not None else config.GEMINI_API_KEY

        if self.model is None and api_key:
            try:
                genai.configure(api_key=api_key)
                self.model = genai.GenerativeModel(self.model_name)
                logger.info(f"Gemini client initialized ({self.model_name})")
            except Exception as e:
                logger.error(f"Gemini client failed: {e}")
                self.model = None

    @property
    def available(self):
        return self.model is not None

    def _generate(self, parts):
        if not self.model:
            raise AIExtractionError('Gemini client not available')
        try:
            response = self.model.generate_content(
                parts,
                generation_config={'response_mime_type': 'application/json', 'temperature': 0.1},
            )
            return response.text
        except Exception as e:
            logger.error(f"Gemini API call failed: {e}")
            raise AIExtractionError(f"Gemini API call failed: {str(e)}")

    def _generate_json(self, parts):
        return extract_json(self._generate(parts))

    @staticmethod
    def _document_parts(label, document):
        if document.text:
            return [f"{label} Text:\n{document.text}"]
        if document.data:
            return [f"{label} Document/Image:", {'mime_type': document.mime_type, 'data': document.data}]
        return [f"No {label.lower()} content provided."]

    # --- KYC document extraction ---

    def extract_offer_letter(self, document):
        if document.is_empty:
            return with_defaults({}, OFFER_LETTER_FIELDS)

        prompt = (
            "You are an expert AI assistant specializing in extracting information from academic offer letters.\n"
            "Analyze the provided offer letter content carefully. Prioritize text content if available.\n\n"
            "Return a JSON object with these keys:\n"
            "- studentName: the complete name of the applicant\n"
            "- universityName: the official name of the institution offering admission\n"
            "- courseName: the specific title of the program or course\n"
            "- admissionLevel: e.g. Bachelor's, Master's, PhD, Post-Graduate Diploma, Diploma\n"
            "- admissionFees: tuition fees with currency and period, e.g. \"$25,000 USD per annum\"\n"
            "- courseStartDate: e.g. \"2024-09-01\", \"Fall 2024\"\n"
            "- offerLetterType: 'Conditional' or 'Unconditional'\n\n"
            f"If a piece of information cannot be found, use \"{NOT_SPECIFIED}\" for that field."
        )
        data = self._generate_json([prompt] + self._document_parts('Offer Letter', document))
        return with_defaults(data, OFFER_LETTER_FIELDS)

    def extract_personal_kyc(self, id_document, passport, id_document_type='PAN Card'):
        if id_document_type not in ID_DOCUMENT_TYPES:
            raise AIExtractionError(f"Unsupported ID document type: {id_document_type}")
        if id_document.is_empty and passport.is_empty:
            result = with_defaults({}, PERSONAL_KYC_FIELDS)
            result['idType'] = id_document_type
            return result

        prompt = (
            "You are an expert AI assistant specializing in extracting information from personal "
            f"identification documents. The applicant supplied a {id_document_type} and a Passport.\n\n"
            "Return a JSON object with these keys: idNumber, idType, passportNumber, mothersName, "
            "fathersName, passportExpiryDate (YYYY-MM-DD), passportIssueDate (YYYY-MM-DD), nameOnPassport, "
            "countryOfUser (country of citizenship or issuance on the passport), dateOfBirth (YYYY-MM-DD), "
            "permanentAddress.\n"
            f"idType should be \"{id_document_type}\". If a value cannot be found, use \"{NOT_SPECIFIED}\"."
        )
        parts = [prompt]
        parts += self._document_parts(id_document_type, id_document)
        parts += self._document_parts('Passport', passport)
        data = self._generate_json(parts)
        result = with_defaults(data, PERSONAL_KYC_FIELDS)
        if result['idType'] == NOT_SPECIFIED:
            result['idType'] = id_document_type
        return result

    def extract_co_signatory_id(self, document, id_document_type='PAN Card'):
        if id_document_type not in ID_DOCUMENT_TYPES:
            raise AIExtractionError(f"Unsupported ID document type: {id_document_type}")
        if document.is_empty:
            result = with_defaults({}, CO_SIGNATORY_FIELDS)
            result['idType'] = id_document_type
            return result

        prompt = (
            "You are an expert AI assistant specializing in extracting information from personal "
            f"identification documents. Analyze the co-signatory's {id_document_type}.\n\n"
            "Return a JSON object with keys idNumber, idType and nameOnId. "
            f"If a value cannot be found, use \"{NOT_SPECIFIED}\"."
        )
        data = self._generate_json([prompt] + self._document_parts('Co-Signatory ID', document))
        return with_defaults(data, CO_SIGNATORY_FIELDS)

    def extract_professional_profile(self, source, source_type):
        """``source`` is a DocumentInput for resumes, or a URL string for
        ``source_type='linkedinUrl'``."""
        if source_type not in PROFILE_SOURCE_TYPES:
            raise AIExtractionError(f"Unsupported profile source: {source_type}")

        prompt = (
            "You are an expert AI assistant specializing in extracting professional information from "
            "resumes and LinkedIn profiles.\n\n"
            "Return a JSON object with keys:\n"
            "- yearsOfExperience: e.g. '5 years', 'Less than 1 year'\n"
            "- gapInLast3YearsMonths: employment gap in the last 3 years, e.g. '3 months', 'None'\n"
            "- currentOrLastIndustry: e.g. 'Information Technology'\n"
            "- currentOrLastJobRole: e.g. 'Software Engineer'\n"
            f"If a value cannot be found, use \"{NOT_SPECIFIED}\"."
        )
        if source_type == 'linkedinUrl':
            if not source:
                return with_defaults({}, PROFESSIONAL_PROFILE_FIELDS)
            parts = [prompt, f"LinkedIn Profile URL (analyze the content at this URL): {source}"]
        else:
            if source is None or source.is_empty:
                return with_defaults({}, PROFESSIONAL_PROFILE_FIELDS)
            parts = [prompt] + self._document_parts('Resume', source)
        return with_defaults(self._generate_json(parts), PROFESSIONAL_PROFILE_FIELDS)

    # --- Recommendations ---

    def generate_university_recommendations(self, preferred_country_1, course_level, course_field,
                                            valid_university_names, preferred_country_2=None):
        if not valid_university_names:
            return {'recommendations': []}

        countries = f"1. {preferred_country_1}"
        if preferred_country_2:
            countries += f"\n2. {preferred_country_2}"
        names = '\n'.join(f"- {name}" for name in valid_university_names)
        prompt = (
            "You are an expert academic advisor AI. Provide university and course recommendations.\n\n"
            "IMPORTANT: Only recommend universities from the following list of valid university names:\n"
            f"{names}\n\n"
            f"The user is looking for options in {course_field} at the {course_level} level.\n"
            f"Their preferred countries are:\n{countries}\n\n"
            "Return a JSON object {\"recommendations\": [...]} with 3 to 5 entries, each having keys "
            "universityName, universitySummary, recommendedCourseName, courseDuration, estimatedFees, testsRequired."
        )
        data = self._generate_json([prompt])
        recommendations = data.get('recommendations', []) if isinstance(data, dict) else []
        allowed = set(valid_university_names)
        return {'recommendations': [r for r in recommendations
                                    if isinstance(r, dict) and r.get('universityName') in allowed]}

    def generate_lender_recommendations(self, country_of_residence, university_name, tuition_fees, course_level):
        prompt = (
            "You are an expert AI loan advisor for international students.\n"
            f"The user is from {country_of_residence} and has been admitted to {university_name} "
            f"for a {course_level} program. Their stated tuition fees are: {tuition_fees}.\n\n"
            f"Provide 2-3 DOMESTIC lender recommendations (from {country_of_residence}) and 2-3 FOREIGN "
            "lender recommendations (from major international student lending markets).\n"
            "Return a JSON object with arrays 'domesticLenders' and 'foreignLenders'; each entry has keys "
            "lenderName, loanType, estimatedLoanAmount (covering 80-95% of the tuition fees), keyFeatures.\n"
            "If no plausible lenders can be generated for a category, return an empty array for it."
        )
        try:
            data = self._generate_json([prompt])
        except AIExtractionError as e:
            logger.error(f"Lender recommendations unavailable: {e}")
            data = {}
        if not isinstance(data, dict):
            data = {}
        return {
            'domesticLenders': data.get('domesticLenders') or [],
            'foreignLenders': data.get('foreignLenders') or [],
        }

    # --- Admin bulk extraction ---

    def extract_lenders(self, document, source_label):
        """Extract lender rows from a PDF, Word or text upload.

        Returns ``(lenders, new_columns)``.
        """
        if document.is_empty:
            return [], []
        prompt = (
            "You are an expert at extracting structured data from documents. "
            f"Extract lender information from the following {source_label} content.\n\n"
            "Extract these fields if available: name (required), description, interestRate (number), "
            "maxLoanAmount (number), minCreditScore (number), logoUrl, website, contactEmail, "
            "isActive (boolean), countries (array of country codes).\n"
            "For any additional fields, create new fields with appropriate names.\n"
            "Return a JSON object {\"lenders\": [...], \"newColumns\": [...]} where newColumns lists the "
            "field names you created."
        )
        if document.text:
            document = DocumentInput(text=document.text[:config.AI_INPUT_CHAR_LIMIT])
        data = self._generate_json([prompt] + self._document_parts(source_label, document))
        if isinstance(data, list):
            return data, []
        if isinstance(data, dict):
            lenders = data.get('lenders')
            if lenders is None:
                lenders = [data]
            return [l for l in lenders if isinstance(l, dict)], list(data.get('newColumns') or [])
        raise AIExtractionError('Could not parse AI response')

    def enrich_university(self, row):
        name = row.get('name', '').strip()
        website = row.get('website', '')
        country = row.get('country', '')
        basic = {
            'name': name,
            'shortName': name[:5].upper(),
            'countries': [country] if country else [],
            'country': country,
            'website': website,
            'isActive': True,
            'dataSource': 'manual',
            'lastVerified': datetime.utcnow().isoformat(),
        }

        prompt = (
            "You are an AI assistant that helps enrich university data. Given the following university "
            "information, provide additional details in JSON format.\n\n"
            f"University: {name}\nWebsite: {website or 'Not provided'}\nCountry: {country or 'Not provided'}\n\n"
            "Return a JSON object with keys: alternativeNames (array), shortName (3-5 letters), "
            "establishedYear, type (public|private|for-profit|non-profit), campusSetting "
            "(urban|suburban|rural|online), qsRanking, qsRankingYear, timesRanking, timesRankingYear, "
            "totalStudents, internationalStudents, studentFacultyRatio, description, academicCalendar, "
            "notablePrograms (array), admissionRequirements {bachelor: {ielts, toefl, gpa}, "
            "master: {ielts, toefl, gpa, gre, gmat}}."
        )
        # A reply in an unexpected shape counts as a failed enrichment
        try:
            enriched = self._generate_json([prompt])
            if not isinstance(enriched, dict):
                raise AIExtractionError('Unexpected enrichment payload')
            requirements = enriched.get('admissionRequirements') or {}
            bachelor = requirements.get('bachelor') or {}
            master = requirements.get('master') or {}
            return {
                **basic,
                'shortName': enriched.get('shortName') or basic['shortName'],
                'alternativeNames': enriched.get('alternativeNames') or [],
                'establishedYear': enriched.get('establishedYear'),
                'type': enriched.get('type'),
                'campusSetting': enriched.get('campusSetting'),
                'qsRanking': enriched.get('qsRanking'),
                'qsRankingYear': enriched.get('qsRankingYear'),
                'timesRanking': enriched.get('timesRanking'),
                'timesRankingYear': enriched.get('timesRankingYear'),
                'totalStudents': enriched.get('totalStudents'),
                'internationalStudents': enriched.get('internationalStudents'),
                'studentFacultyRatio': enriched.get('studentFacultyRatio'),
                'academicCalendar': enriched.get('academicCalendar'),
                'notes': enriched.get('description'),
                'programs': [_program_entry(p) for p in enriched.get('notablePrograms') or []],
                'admissionRequirements': [
                    {'level': 'bachelor', 'ielts': bachelor.get('ielts'), 'toefl': bachelor.get('toefl'),
                     'gpa': bachelor.get('gpa')},
                    {'level': 'master', 'ielts': master.get('ielts'), 'toefl': master.get('toefl'),
                     'gpa': master.get('gpa'), 'gre': master.get('gre'), 'gmat': master.get('gmat')},
                ],
                'dataSource': 'qs',
            }
        except (AIExtractionError, AttributeError, TypeError) as e:
            logger.error(f"Error enriching university data for {name}: {e}")
            return basic


def _program_entry(program):
    lowered = program.lower()
    if 'bachelor' in lowered:
        level, duration = 'bachelor', 4
    elif 'master' in lowered:
        level, duration = 'master', 2
    elif 'phd' in lowered or 'doctorate' in lowered:
        level, duration = 'phd', 4
    else:
        level, duration = 'certificate', 1
    return {'name': program, 'level': level, 'duration': duration,
            'field': program.split(' ')[0], 'language': 'English'}
