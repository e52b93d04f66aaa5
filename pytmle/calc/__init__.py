from .utils import (normal_ppf, logit, probability_bounds, plateau,
                    one_sample_pvalue, one_sample_confint)
