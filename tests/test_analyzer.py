import unittest

from analyzer import (
    KeywordInsight,
    KeywordSource,
    SuggestionKind,
    _dominant_section,
    _refine_keywords,
    analyze_resume,
    build_ngram_counts,
    build_phrase,
    compute_percentile,
    extract_keywords,
    segment,
    tokenize,
)
from skills import RequirementTier

SCENARIO_JD = (
    "Requirements: Must have React experience. "
    "Responsibilities: Lead agile ceremonies. "
    "Preferred: AWS certification."
)

PLATFORM_JD = """
Senior Data Platform Engineer

Requirements
- 5+ years building Python data pipelines on AWS
- Experience with Spark, Kafka and Airflow orchestration at scale
- Strong SQL and data modeling background for analytics workloads

Responsibilities
- Own the ingestion layer and streaming data pipelines end to end
- Partner with analytics engineers on dbt models and data quality checks
- Mentor engineers and drive code reviews across the data platform

Nice to have
- Terraform and Kubernetes experience running Spark on Kubernetes
- Exposure to machine learning feature stores and ML Ops tooling
"""


def make_keyword(canonical, importance=1.0, occurrences=1, section=RequirementTier.CORE, coverage=0.1, label=None):
    return KeywordInsight(
        canonical=canonical,
        label=label or canonical,
        occurrences=occurrences,
        importance=importance,
        section=section,
        source=KeywordSource.PHRASE if " " in canonical else KeywordSource.TERM,
        variants=[canonical],
        coverage=coverage,
    )


class SegmentationTests(unittest.TestCase):
    def test_inline_heading_labels_switch_tiers(self):
        fragments = segment(SCENARIO_JD)
        self.assertEqual(
            [(fragment.content, fragment.section) for fragment in fragments],
            [
                ("Must have React experience.", RequirementTier.CORE),
                ("Lead agile ceremonies.", RequirementTier.RESPONSIBILITY),
                ("AWS certification.", RequirementTier.PREFERRED),
            ],
        )
        self.assertEqual([fragment.id for fragment in fragments], [0, 1, 2])

    def test_heading_lines_are_consumed(self):
        fragments = segment("Responsibilities\nBuild dashboards in Tableau\n\nNice to have\nExperience with Snowflake")
        self.assertEqual(
            [(fragment.content, fragment.section) for fragment in fragments],
            [
                ("Build dashboards in Tableau", RequirementTier.RESPONSIBILITY),
                ("Experience with Snowflake", RequirementTier.PREFERRED),
            ],
        )

    def test_inline_priority_only_applies_to_its_line(self):
        fragments = segment(
            "Responsibilities\nExperience with Terraform is required\nOperate Kafka clusters"
        )
        self.assertEqual(
            [fragment.section for fragment in fragments],
            [RequirementTier.CORE, RequirementTier.RESPONSIBILITY],
        )

    def test_long_lines_are_never_headings(self):
        line = (
            "Familiarity with Snowflake, dbt, and Airflow orchestration is preferred "
            "for this data platform engineering role"
        )
        self.assertGreater(len(line), 80)
        fragments = segment(line)
        self.assertEqual(len(fragments), 1)
        self.assertIs(fragments[0].section, RequirementTier.PREFERRED)

    def test_heading_length_boundary(self):
        padded = "Requirements " + "platform " * 10
        heading = padded[:80]
        too_long = padded[:81]
        self.assertEqual(len(heading), 80)
        self.assertEqual(len(too_long), 81)

        fragments = segment(heading + "\nBuild Kafka pipelines")
        self.assertEqual([fragment.content for fragment in fragments], ["Build Kafka pipelines"])
        self.assertIs(fragments[0].section, RequirementTier.CORE)

        fragments = segment(too_long + "\nBuild Kafka pipelines")
        self.assertEqual([fragment.content for fragment in fragments], [too_long, "Build Kafka pipelines"])
        self.assertTrue(all(fragment.section is RequirementTier.GENERAL for fragment in fragments))

    def test_labels_inside_long_lines_only_tag_their_clause(self):
        line = (
            "We offer a competitive base salary and equity for all staff. "
            "Bonus: up to ten percent paid annually to every employee."
        )
        self.assertGreater(len(line), 80)
        fragments = segment(line + "\nOperate Kafka clusters")
        self.assertEqual(
            [(fragment.content, fragment.section) for fragment in fragments],
            [
                ("We offer a competitive base salary and equity for all staff.", RequirementTier.GENERAL),
                ("up to ten percent paid annually to every employee.", RequirementTier.PREFERRED),
                ("Operate Kafka clusters", RequirementTier.GENERAL),
            ],
        )

    def test_short_labelled_lines_switch_the_active_tier(self):
        fragments = segment("Responsibilities: Operate Kafka clusters\nTune consumer lag")
        self.assertEqual(
            [fragment.section for fragment in fragments],
            [RequirementTier.RESPONSIBILITY, RequirementTier.RESPONSIBILITY],
        )

    def test_untiered_text_defaults_to_general(self):
        fragments = segment("Location: Remote\nWe ship weekly")
        self.assertEqual([fragment.content for fragment in fragments], ["Location: Remote", "We ship weekly"])
        self.assertTrue(all(fragment.section is RequirementTier.GENERAL for fragment in fragments))

    def test_blank_text_yields_no_fragments(self):
        self.assertEqual(segment(""), [])
        self.assertEqual(segment("  \n\t\n  "), [])

    def test_non_text_input_is_rejected(self):
        with self.assertRaises(TypeError):
            segment(None)


class TokenizeTests(unittest.TestCase):
    def test_keeps_symbols_used_by_tech_terms(self):
        self.assertEqual(
            tokenize("C++, C#, CI/CD and Node.js"),
            ["c++", "c#", "ci/cd", "and", "node", "js"],
        )

    def test_phrase_rules(self):
        tokens = ["lead", "agile", "ceremonies"]
        self.assertEqual(build_phrase(tokens, 0, 3), "lead agile ceremonies")
        self.assertEqual(build_phrase(tokens, 1, 2), "agile ceremonies")
        self.assertIsNone(build_phrase(tokens, 2, 2))
        self.assertIsNone(build_phrase(["must", "have", "react"], 0, 2))
        self.assertIsNone(build_phrase(["react", "and"], 0, 2))
        self.assertEqual(build_phrase(["data", "and", "analytics"], 0, 3), "data and analytics")
        self.assertIsNone(build_phrase(["data", "of", "the"], 0, 3))


class ExtractKeywordsTests(unittest.TestCase):
    def test_scenario_tiers(self):
        keywords = {keyword.canonical: keyword for keyword in extract_keywords(SCENARIO_JD)}
        self.assertIs(keywords["react"].section, RequirementTier.CORE)
        self.assertIs(keywords["agile"].section, RequirementTier.RESPONSIBILITY)
        self.assertIs(keywords["lead agile ceremonies"].section, RequirementTier.RESPONSIBILITY)
        self.assertIs(keywords["aws"].section, RequirementTier.PREFERRED)
        self.assertIs(keywords["aws certification"].source, KeywordSource.PHRASE)
        self.assertIs(keywords["aws"].source, KeywordSource.TERM)

    def test_blank_text_returns_empty_list(self):
        self.assertEqual(extract_keywords(""), [])
        self.assertEqual(extract_keywords("   \n  "), [])
        self.assertEqual(extract_keywords("and the with"), [])

    def test_extraction_is_idempotent(self):
        self.assertEqual(extract_keywords(PLATFORM_JD), extract_keywords(PLATFORM_JD))

    def test_importance_bounds_and_ordering(self):
        keywords = extract_keywords(PLATFORM_JD)
        self.assertTrue(keywords)
        self.assertLessEqual(len(keywords), 28)
        importances = [keyword.importance for keyword in keywords]
        self.assertEqual(importances, sorted(importances, reverse=True))
        for keyword in keywords:
            self.assertGreaterEqual(keyword.importance, 0.0)
            self.assertLessEqual(keyword.importance, 1.0)
            self.assertGreaterEqual(keyword.coverage, 0.0)
            self.assertLessEqual(keyword.coverage, 1.0)
            self.assertEqual(keyword.variants, sorted(keyword.variants))
        self.assertEqual(keywords[0].importance, max(importances))

    def test_limit_truncates_ranked_list(self):
        full = extract_keywords(PLATFORM_JD)
        self.assertEqual(extract_keywords(PLATFORM_JD, limit=3), full[:3])
        self.assertEqual(extract_keywords(PLATFORM_JD, limit=0), [])

    def test_synonyms_share_one_keyword(self):
        keywords = {keyword.canonical: keyword for keyword in extract_keywords("Build UIs with ReactJS\nMaintain React.js components")}
        self.assertIn("react", keywords)
        self.assertNotIn("reactjs", keywords)
        react = keywords["react"]
        self.assertEqual(react.occurrences, 3)
        self.assertIs(react.source, KeywordSource.PHRASE)
        self.assertEqual(react.label, "reactjs")
        self.assertTrue({"react", "reactjs", "react js", "react native"}.issubset(react.variants))
        self.assertEqual(react.coverage, 1.0)

    def test_label_uses_most_frequent_surface(self):
        keywords = {keyword.canonical: keyword for keyword in extract_keywords("Node.js APIs\nNodeJS workers\nNodeJS tooling")}
        self.assertEqual(keywords["node"].label, "nodejs")

    def test_jd_wide_low_importance_terms_are_dropped(self):
        lines = ["kafka " * 20] + [
            f"platform {tool}" for tool in ("tableau", "snowflake", "airflow", "looker", "dbt", "spark")
        ]
        keywords = extract_keywords("\n".join(lines))
        canonicals = [keyword.canonical for keyword in keywords]
        self.assertNotIn("platform", canonicals)
        self.assertEqual(canonicals[0], "kafka kafka")
        # The percentile pass would leave only three keywords, so it is skipped.
        self.assertEqual(len(keywords), 15)


class RefinementTests(unittest.TestCase):
    def test_coverage_filter(self):
        keywords = (
            [make_keyword(f"generic{index}", importance=0.3, coverage=0.9) for index in range(6)]
            + [make_keyword("platform", importance=0.5, coverage=0.9)]
            + [make_keyword(f"tool{index}", importance=0.2, coverage=0.1) for index in range(5)]
        )
        refined = _refine_keywords(keywords)
        self.assertEqual(
            [keyword.canonical for keyword in refined],
            ["platform", "tool0", "tool1", "tool2", "tool3", "tool4"],
        )

    def test_coverage_filter_skipped_when_too_few_remain(self):
        keywords = [make_keyword(f"generic{index}", importance=0.2, coverage=0.9) for index in range(8)] + [
            make_keyword(f"tool{index}", importance=0.2, coverage=0.1) for index in range(3)
        ]
        self.assertEqual(_refine_keywords(keywords), keywords)

    def test_percentile_filter(self):
        importances = [1.0, 0.9, 0.8, 0.7, 0.6, 0.5, 0.3, 0.2, 0.2, 0.1, 0.1, 0.1, 0.1, 0.1]
        keywords = [make_keyword(f"term{index}", importance=value) for index, value in enumerate(importances)]
        refined = _refine_keywords(keywords)
        self.assertEqual([keyword.importance for keyword in refined], [1.0, 0.9, 0.8, 0.7, 0.6, 0.5, 0.3])

    def test_percentile(self):
        self.assertAlmostEqual(compute_percentile([0.1, 0.2, 0.3, 0.4, 0.5], 0.25), 0.2)
        self.assertAlmostEqual(compute_percentile([0.2, 0.4], 0.25), 0.25)
        self.assertEqual(compute_percentile([], 0.25), 0.0)

    def test_dominant_section_ties_follow_tier_order(self):
        weights = {
            RequirementTier.CORE: 1.0,
            RequirementTier.RESPONSIBILITY: 1.0,
            RequirementTier.PREFERRED: 0.0,
            RequirementTier.GENERAL: 0.0,
        }
        self.assertIs(_dominant_section(weights), RequirementTier.CORE)
        weights = {
            RequirementTier.CORE: 0.0,
            RequirementTier.RESPONSIBILITY: 0.0,
            RequirementTier.PREFERRED: 2.0,
            RequirementTier.GENERAL: 2.0,
        }
        self.assertIs(_dominant_section(weights), RequirementTier.PREFERRED)


class AnalyzeResumeTests(unittest.TestCase):
    def test_react_scenario(self):
        keyword = make_keyword("react", importance=1.0)
        analysis = analyze_resume("I have 5 years of React and React Native experience", [keyword])
        self.assertEqual(len(analysis.matched_keywords), 1)
        self.assertGreaterEqual(analysis.matched_keywords[0].resume_hits, 1)
        self.assertEqual(analysis.missing_keywords, [])
        self.assertEqual(analysis.score, 100)
        self.assertEqual(analysis.summary, "Coverage 100%, depth 100%, breadth 100% vs JD priorities.")

    def test_synonym_hits_match_literal_hits(self):
        keywords = [keyword for keyword in extract_keywords(SCENARIO_JD) if keyword.canonical == "react"]
        self.assertEqual(len(keywords), 1)
        literal = analyze_resume("Built apps in React", keywords)
        dotted = analyze_resume("Built apps in React.js", keywords)
        joined = analyze_resume("Built apps in ReactJS", keywords)
        self.assertEqual(literal.matched_keywords[0].resume_hits, 1)
        self.assertEqual(dotted.matched_keywords[0].resume_hits, 1)
        self.assertEqual(joined.matched_keywords[0].resume_hits, 1)
        self.assertEqual(literal.score, dotted.score)

    def test_synonyms_of_a_different_length_still_match(self):
        keywords = [make_keyword("search engine optimization", label="seo")]
        short = analyze_resume("Owned SEO for the storefront", keywords)
        spelled_out = analyze_resume("Owned search engine optimization for the storefront", keywords)
        self.assertEqual(short.matched_keywords[0].resume_hits, 1)
        self.assertEqual(spelled_out.matched_keywords[0].resume_hits, 1)
        self.assertEqual(short.score, spelled_out.score)
        self.assertEqual(short.suggestions, [])

    def test_job_description_matches_all_of_its_own_keywords(self):
        acronyms_jd = "SEO and PPC campaigns\nRecruitment of engineers\nMLOps pipelines"
        for jd_text in (acronyms_jd, PLATFORM_JD, SCENARIO_JD):
            keywords = extract_keywords(jd_text)
            analysis = analyze_resume(jd_text, keywords)
            self.assertEqual(analysis.missing_keywords, [], jd_text)
            self.assertEqual(len(analysis.matched_keywords), len(keywords))

        canonicals = {keyword.canonical for keyword in extract_keywords(acronyms_jd)}
        self.assertTrue(
            {"search engine optimization", "pay per click", "talent acquisition", "machine learning"}.issubset(
                canonicals
            )
        )

    def test_phrase_keywords_match_synonym_phrases(self):
        analysis = analyze_resume("Strong data analytics background", [make_keyword("data analysis")])
        self.assertEqual(analysis.matched_keywords[0].resume_hits, 1)

    def test_long_keywords_count_as_missing(self):
        keyword = make_keyword("large scale distributed systems")
        analysis = analyze_resume("large scale distributed systems", [keyword])
        self.assertEqual(analysis.matched_keywords, [])
        self.assertEqual(analysis.missing_keywords[0].resume_hits, 0)

    def test_empty_resume_scores_zero(self):
        keywords = extract_keywords(PLATFORM_JD)
        analysis = analyze_resume("", keywords)
        self.assertEqual(analysis.score, 0)
        self.assertEqual(analysis.matched_keywords, [])
        self.assertEqual(len(analysis.missing_keywords), len(keywords))

    def test_empty_keyword_list(self):
        analysis = analyze_resume("Python engineer", [])
        self.assertEqual(analysis.score, 0)
        self.assertEqual(analysis.matched_keywords, [])
        self.assertEqual(analysis.missing_keywords, [])
        self.assertEqual(analysis.suggestions, [])
        self.assertEqual(analysis.summary, "Coverage 0%, depth 0%, breadth 0% vs JD priorities.")

    def test_score_components(self):
        keywords = [
            make_keyword("python", importance=1.0, occurrences=2),
            make_keyword("docker", importance=0.5),
            make_keyword("kubernetes", importance=0.5),
        ]
        resume = "Python services on Kubernetes; kubernetes operators; kubernetes upgrades"
        analysis = analyze_resume(resume, keywords)
        self.assertEqual(analysis.summary, "Coverage 75%, depth 50%, breadth 67% vs JD priorities.")
        self.assertEqual(analysis.score, 67)
        hits = {match.canonical: match.resume_hits for match in analysis.matched_keywords}
        self.assertEqual(hits, {"python": 1, "kubernetes": 3})
        self.assertEqual([match.canonical for match in analysis.missing_keywords], ["docker"])

        kinds = [(suggestion.kind, suggestion.canonical) for suggestion in analysis.suggestions]
        self.assertEqual(kinds, [(SuggestionKind.ADD, "docker"), (SuggestionKind.EXPAND, "python")])
        add = analysis.suggestions[0]
        self.assertEqual(add.weight, 50)
        self.assertEqual(add.detail, "Must-have priority · JD weight 50%")
        self.assertIn("docker", add.action)

    def test_partition_and_score_bounds(self):
        keywords = extract_keywords(PLATFORM_JD)
        resumes = [
            "",
            "Python Spark Kafka Airflow SQL AWS Terraform Kubernetes dbt " * 5,
            "Barista with latte art experience",
            PLATFORM_JD,
        ]
        for resume in resumes:
            analysis = analyze_resume(resume, keywords)
            self.assertEqual(len(analysis.matched_keywords) + len(analysis.missing_keywords), len(keywords))
            self.assertGreaterEqual(analysis.score, 0)
            self.assertLessEqual(analysis.score, 100)

    def test_inputs_are_not_mutated(self):
        keywords = extract_keywords(PLATFORM_JD)
        snapshot = list(keywords)
        analyze_resume("Python and Spark", keywords)
        analyze_resume("Kafka", keywords)
        self.assertEqual(keywords, snapshot)

    def test_non_text_resume_is_rejected(self):
        with self.assertRaises(TypeError):
            analyze_resume(None, [])


class SuggestionTests(unittest.TestCase):
    def test_add_suggestions_cap_and_order(self):
        keywords = [make_keyword(f"skill{index}", importance=(index + 1) / 10) for index in range(7)]
        analysis = analyze_resume("nothing relevant here", keywords)
        adds = [suggestion for suggestion in analysis.suggestions if suggestion.kind is SuggestionKind.ADD]
        self.assertEqual([suggestion.canonical for suggestion in adds], ["skill6", "skill5", "skill4", "skill3", "skill2"])
        self.assertEqual([suggestion.weight for suggestion in adds], [70, 60, 50, 40, 30])

    def test_expand_suggestions_keep_matched_order(self):
        keywords = [
            make_keyword("python", occurrences=3),
            make_keyword("golang", occurrences=1),
            make_keyword("rust", occurrences=4),
            make_keyword("scala", occurrences=2),
        ]
        analysis = analyze_resume("python golang rust scala", keywords)
        expands = [suggestion.canonical for suggestion in analysis.suggestions if suggestion.kind is SuggestionKind.EXPAND]
        self.assertEqual(expands, ["python", "rust"])


class NgramCountTests(unittest.TestCase):
    def test_counts_are_canonicalized(self):
        tokens = tokenize("React Native and ReactJS with Node.js")
        self.assertEqual(build_ngram_counts(tokens, 1)["react"], 2)
        self.assertEqual(build_ngram_counts(tokens, 1)["node"], 1)
        bigrams = build_ngram_counts(tokens, 2)
        self.assertEqual(bigrams["react"], 1)
        self.assertEqual(bigrams["node"], 1)


class KeywordInsightFromDictTests(unittest.TestCase):
    def test_rebuilds_client_payload(self):
        keyword = KeywordInsight.from_dict(
            {"label": "React.js", "importance": 1.4, "section": "preferred", "occurrences": 0, "source": "bogus"}
        )
        self.assertEqual(keyword.canonical, "react")
        self.assertEqual(keyword.label, "React.js")
        self.assertEqual(keyword.importance, 1.0)
        self.assertIs(keyword.section, RequirementTier.PREFERRED)
        self.assertEqual(keyword.occurrences, 1)
        self.assertIs(keyword.source, KeywordSource.TERM)

    def test_requires_a_key(self):
        with self.assertRaises(ValueError):
            KeywordInsight.from_dict({"importance": 0.5})


if __name__ == "__main__":
    unittest.main()
