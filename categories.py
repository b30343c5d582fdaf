"""
Statutory court-accounting categories and the keyword rules that select them.

Codes starting with "A" are Schedule A receipts, codes starting with "C" are
Schedule C disbursements. Rules are evaluated in declaration order and the
first rule wins a tie, so more specific rules are listed first.
"""
import re
from dataclasses import dataclass
from typing import Dict, Optional, Pattern, Tuple

from schema import Direction

A2_INTEREST = 'A2_INTEREST'
A3_PENSIONS_ANNUITIES = 'A3_PENSIONS_ANNUITIES'
A5_SOCIAL_SECURITY_VA = 'A5_SOCIAL_SECURITY_VA'
A6_OTHER_RECEIPTS = 'A6_OTHER_RECEIPTS'
C1_CAREGIVER = 'C1_CAREGIVER'
C2_RESIDENTIAL_FACILITY = 'C2_RESIDENTIAL_FACILITY'
C4_FIDUCIARY_ATTORNEY = 'C4_FIDUCIARY_ATTORNEY'
C5_GENERAL_ADMIN = 'C5_GENERAL_ADMIN'
C6_MEDICAL = 'C6_MEDICAL'
C7_LIVING_EXPENSES = 'C7_LIVING_EXPENSES'
C8_TAXES = 'C8_TAXES'
C9_OTHER_DISBURSEMENTS = 'C9_OTHER_DISBURSEMENTS'

CATEGORY_NAMES: Dict[str, str] = {
    A2_INTEREST: 'Schedule A(2) - Interest',
    A3_PENSIONS_ANNUITIES: 'Schedule A(3) - Pensions, Annuities, and Other Regular Periodic Payments',
    A5_SOCIAL_SECURITY_VA: "Schedule A(5) - Social Security, Veterans' Benefits, Other Public Benefits",
    A6_OTHER_RECEIPTS: 'Schedule A(6) - Other Receipts',
    C1_CAREGIVER: 'Schedule C(1) - Caregiver Expenses',
    C2_RESIDENTIAL_FACILITY: 'Schedule C(2) - Residential or Long-Term Care Facility Expenses',
    C4_FIDUCIARY_ATTORNEY: 'Schedule C(4) - Fiduciary and Attorney Fees',
    C5_GENERAL_ADMIN: 'Schedule C(5) - General Administration Expenses',
    C6_MEDICAL: 'Schedule C(6) - Medical Expenses',
    C7_LIVING_EXPENSES: 'Schedule C(7) - Living Expenses',
    C8_TAXES: 'Schedule C(8) - Taxes',
    C9_OTHER_DISBURSEMENTS: 'Schedule C(9) - Other Disbursements',
}

DEFAULT_CATEGORY = {
    Direction.RECEIPT: (A6_OTHER_RECEIPTS, 'Other Receipts'),
    Direction.DISBURSEMENT: (C9_OTHER_DISBURSEMENTS, 'Other Disbursements'),
}


@dataclass(frozen=True)
class CategoryRule:
    code: str
    name: str
    patterns: Tuple[Pattern, ...]
    weight: float
    sub_category: Optional[str] = None

    @property
    def direction(self) -> Direction:
        return Direction.RECEIPT if self.code.startswith('A') else Direction.DISBURSEMENT

    @property
    def saturation(self) -> float:
        """Score at which a match counts as certain: two matching patterns."""
        return self.weight * min(len(self.patterns), 2)


def _rule(code: str, name: str, patterns: Tuple[str, ...], weight: float,
          sub_category: Optional[str] = None) -> CategoryRule:
    return CategoryRule(
        code=code,
        name=name,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        weight=weight,
        sub_category=sub_category,
    )


RECEIPT_RULES = (
    # Pensions come before interest so "trust distribution" never scores as interest
    _rule(A3_PENSIONS_ANNUITIES, 'Pensions, Annuities', (
        r'fletcher\s+jones', r'trust.*distribution', r'pension', r'annuity', r'retirement',
    ), 4.0),
    _rule(A2_INTEREST, 'Interest', (
        r'interest\s+earned', r'interest\s+payment', r'\bdividend\b', r'int\s+paid', r'int\s+credit',
    ), 3.0),
    _rule(A5_SOCIAL_SECURITY_VA, 'Social Security, VA Benefits', (
        r'ssa\s+treas', r'\bssa\b', r'soc\s+sec', r'social\s+security', r'\bssi\b', r'\bssdi\b',
        r'veterans?\s+admin', r'\bva\s+benefit', r'\bva\s+payment',
    ), 3.5),
    _rule(A6_OTHER_RECEIPTS, 'Other Receipts', (
        r'refund', r'reimb', r'reimbursement', r'\breturn', r'rebate',
    ), 2.0),
)

DISBURSEMENT_RULES = (
    _rule(C1_CAREGIVER, 'Caregiver Expenses', (
        r'caregiver', r'care\s+giver', r'nursing', r'\baide\b', r'companion\s+care', r'home\s+care',
    ), 3.0),

    # C(2) residential facility
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'\bladwp\b', r'\bdwp\b', r'water.*power', r'water.*electric', r'\bsce\b', r'so\s*cal\s*edison',
    ), 3.5, 'WATER_ELECTRICITY_UTILITIES'),
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'socalgas', r'socal\s+gas', r'so\s*cal\s+gas', r'gas\s+company', r'natural\s+gas',
    ), 3.5, 'GAS_UTILITY'),
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'spectrum', r'charter\s+commun', r'\batt\b.*payment', r'at\s*&\s*t', r'comcast', r'xfinity',
    ), 3.0, 'TELECOM_SERVICE'),
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'home\s+depot', r"lowe'?s", r'hardware', r'dunn.*edwards', r'window', r'\bblinds?\b', r'\btile\b',
        r'\bdeck\b', r'repair', r'plaster', r'\bpaint', r'anytime\s+windows',
    ), 3.0, 'HOME_MAINTENANCE'),
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'electric\s+service', r'electrician', r'plumb', r'\bhvac\b',
    ), 2.5, 'ELECTRICIAN_PLUMBING'),
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'\bring\b.*yearly', r'\badt\b', r'security\s+system', r'alarm', r'simplisafe',
    ), 2.5, 'HOME_SECURITY'),
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'landscap', r'garden', r'tree\s+service', r'\byard\b', r'\blawn\b', r'irrigation',
    ), 2.5, 'LANDSCAPING'),
    _rule(C2_RESIDENTIAL_FACILITY, 'Residential Facility', (
        r'\bpool\b', r'\bspa\b', r'pool\s+service',
    ), 2.5, 'POOL_MAINTENANCE'),

    _rule(C4_FIDUCIARY_ATTORNEY, 'Fiduciary and Attorney Fees', (
        r'law\s+office', r'attorney', r'\besq\b', r'legal', r'trustee\s+fee', r'fiduciary',
        r'professional\s+fiduciary',
    ), 3.0),

    # C(5) general administration
    _rule(C5_GENERAL_ADMIN, 'General Administration', (
        r'caefile', r'court\s+fee', r'court\s+filing', r'filing\s+fee',
    ), 3.0, 'COURT_FEES'),
    _rule(C5_GENERAL_ADMIN, 'General Administration', (
        r'bond\s+payment', r'bond\s+premium', r'conservatorship\s+bond',
    ), 3.0, 'BOND'),
    _rule(C5_GENERAL_ADMIN, 'General Administration', (
        r'check\s+order', r'service\s+fee', r'bank\s+fee', r'account\s+fee',
    ), 2.5, 'BANK_FEES'),
    _rule(C5_GENERAL_ADMIN, 'General Administration', (
        r'accounting\s+fee', r'tax\s+prep', r'\bcpa\b',
    ), 2.5, 'ACCOUNTING'),

    # C(6) medical
    _rule(C6_MEDICAL, 'Medical Expenses', (
        r'\bcvs\b', r'walgreens', r'pharmacy', r'rite\s+aid', r'prescription', r'\brx\b',
    ), 3.0, 'PHARMACY'),
    _rule(C6_MEDICAL, 'Medical Expenses', (
        r'\bdmd\b', r'\bdds\b', r'dentist', r'dental', r'\bdr\s+', r'doctor', r'clinic', r'medical\s+office',
    ), 2.5, 'DOCTOR_DENTAL'),
    _rule(C6_MEDICAL, 'Medical Expenses', (
        r'sharp\s+pet', r'\bvet\b', r'veterinar', r'animal\s+hospital', r'dog.*cat.*hospital',
    ), 2.5, 'PET_MEDICAL'),
    _rule(C6_MEDICAL, 'Medical Expenses', (
        r'hospital', r'health\s+care\s+provider', r'medical\s+center', r'urgent\s+care', r'anthem',
        r'blue\s+cross', r'kaiser', r'medicare',
    ), 2.0, 'GENERAL_MEDICAL'),

    # C(7) living expenses
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'sprouts', r'trader\s+joe', r'ralphs', r'gelson', r'\bvons\b', r'grocery', r'vintage\s+grocer',
        r'whole\s+foods', r'safeway', r'kroger',
    ), 3.5, 'DINING_FOOD'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'shake\s+shack', r'starbucks', r'restaurant', r'chipotle', r'burger', r'\bgrill', r'\bcafe\b',
        r'coffee', r'baja\s+fresh', r'fatburger', r'wood\s+ranch', r'outback', r'doordash', r'uber\s+eats',
        r'grubhub', r'postmates',
    ), 3.0, 'RESTAURANTS_DINING'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'\bamazon\b', r'\bamzn\b',
    ), 3.0, 'ONLINE_SHOPPING'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'chevron', r'\bshell\b', r'\barco\b', r'mobil', r'\b76\s', r'gas\s+station', r'\bfuel\b',
    ), 2.5, 'GAS_FUEL'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'la\s+fitness', r'\bgym\b', r'fitness', r'24\s+hour', r'planet\s+fitness', r'equinox',
    ), 3.0, 'FITNESS_GYM'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r"rusty'?s\s+discount\s+pet", r'pet\s+store', r'petco', r'petsmart', r'trupanion', r'pet\s+insurance',
        r'pet\s+food',
    ), 2.5, 'PET_EXPENSES'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'salon', r'beauty', r'\bnails?\b', r'\bhair\b', r'barber', r'manicure', r'pedicure',
    ), 2.5, 'PERSONAL_CARE'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r"macy'?s", r'nordstrom', r'uniqlo', r'banana\s+republic', r'ann\s+taylor', r'\bnike\b', r'\bgap\b',
        r'clothing', r'apparel',
    ), 2.5, 'CLOTHING'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'sirius', r'\bsxm\b', r'netflix', r'streaming', r'hulu', r'spotify', r'apple\s+music', r'disney\+',
    ), 2.5, 'STREAMING_SERVICES'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'\bvioc\b', r'oil\s+change', r'smog', r'carfax', r'auto\s+service', r'jiffy\s+lube', r'valvoline',
        r'\btires?\b', r'\bdmv\b',
    ), 2.5, 'AUTO_MAINTENANCE'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'hobby\s+lobby', r'michaels', r'\bcrafts?\b', r'joann', r'art\s+supply',
    ), 2.0, 'ART_SUPPLIES'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'\btarget\b', r'walmart', r'costco', r'bed\s+bath', r"sam'?s\s+club",
    ), 2.0, 'HOME_GOODS'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'staples', r'office\s+depot', r'office\s+supply',
    ), 2.0, 'OFFICE_SUPPLIES'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'vitamin', r'supplement', r'\bgnc\b',
    ), 2.0, 'HEALTH_SUPPLEMENTS'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'\busps\b', r'ups\s+store', r'fedex', r'post\s+office', r'postage',
    ), 2.0, 'POSTAGE'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'locksmith',
    ), 2.0, 'LOCKSMITH'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'barnes', r'\bnoble\b', r'bookstore', r'\bbooks?\b',
    ), 2.0, 'BOOKS'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'\bdell\b', r'apple\s+store', r'best\s+buy', r'norton', r'mcafee', r'software', r'computer',
    ), 2.0, 'COMPUTERS_TECHNOLOGY'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'\buber\b', r'\blyft\b', r'airline', r'hotel', r'airbnb', r'travel', r'flight',
    ), 2.0, 'TRAVEL_TRANSPORTATION'),
    _rule(C7_LIVING_EXPENSES, 'Living Expenses', (
        r'\bgeico\b', r'state\s+farm', r'allstate', r'progressive', r'car\s+insurance', r'auto\s+insurance',
    ), 3.0, 'CAR_INSURANCE'),

    # C(8) taxes
    _rule(C8_TAXES, 'Taxes', (
        r'\birs\b', r'u\.?s\.?\s+treasury', r'federal\s+tax', r'internal\s+revenue',
    ), 3.5, 'FEDERAL_TAX'),
    _rule(C8_TAXES, 'Taxes', (
        r'franchise\s+tax', r'\bftb\b', r'state\s+tax',
    ), 3.5, 'STATE_TAX'),
    _rule(C8_TAXES, 'Taxes', (
        r'property\s+tax', r'county.*tax',
    ), 3.5, 'PROPERTY_TAX'),

    # C(9) other disbursements
    _rule(C9_OTHER_DISBURSEMENTS, 'Other Disbursements', (
        r'donation', r'charitable', r'charity', r'contribution',
    ), 2.0),
    _rule(C9_OTHER_DISBURSEMENTS, 'Other Disbursements', (
        r'visa\s+payment', r'credit\s+card.*payment', r'mastercard', r'\bamex\b',
    ), 3.0, 'CREDIT_CARD_PAYMENT'),
)

CATEGORY_RULES = RECEIPT_RULES + DISBURSEMENT_RULES


def category_name(code: str) -> str:
    return CATEGORY_NAMES.get(code, code)
